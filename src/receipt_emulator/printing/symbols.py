"""Barcode and QR module encoding.

Symbols are reduced to rows of '1' (bar/dark module) and '0' (space)
characters, so both renderers paint exactly the same pattern.
"""

from typing import Tuple

import barcode
import qrcode
from barcode.errors import BarcodeError
from qrcode.exceptions import DataOverflowError

from receipt_emulator.protocol.commands import Symbology


Modules = Tuple[str, ...]

# python-barcode names for the linear symbologies it can encode
LINEAR_ENCODERS = {
    Symbology.UPC_A: "upca",
    Symbology.EAN13: "ean13",
    Symbology.EAN8: "ean8",
    Symbology.CODE39: "code39",
    Symbology.ITF: "itf",
    Symbology.CODABAR: "codabar",
    Symbology.CODE128: "code128",
}

QR_ERROR_LEVELS = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}


class SymbolError(ValueError):
    """Payload cannot be encoded in the requested symbology."""


class UnsupportedSymbology(SymbolError):
    """No encoder is available for the symbology."""


def _strip_code128_set(payload: str) -> str:
    # ESC/POS CODE128 payloads start with a code set selector such as "{B"
    if len(payload) >= 2 and payload[0] == "{" and payload[1] in "ABC":
        return payload[2:]
    return payload


def readable_text(symbology: Symbology, payload: str) -> str:
    """Human readable interpretation printed next to a barcode."""
    if symbology is Symbology.CODE128:
        return _strip_code128_set(payload)
    return payload


def encode_linear(symbology: Symbology, payload: str) -> str:
    """Encode a 1D barcode into a single row of modules.

    Args:
        symbology: Barcode type
        payload: Barcode content as printed by GS k

    Returns:
        String of '1' and '0' modules
    """
    name = LINEAR_ENCODERS.get(symbology)
    if name is None:
        raise UnsupportedSymbology(f"no encoder for {symbology.value}")

    options = {}
    if symbology is Symbology.CODE39:
        payload = payload.strip("*")
        options["add_checksum"] = False
    elif symbology is Symbology.CODE128:
        payload = _strip_code128_set(payload)

    if not payload:
        raise SymbolError(f"empty {symbology.value} payload")

    try:
        code = barcode.get_barcode_class(name)(payload, **options)
        rows = code.build()
    except (BarcodeError, ValueError, KeyError, IndexError) as e:
        raise SymbolError(f"invalid {symbology.value} payload {payload!r}: {e}") from e

    # Guard bar markers count as bars
    return "".join("0" if module == "0" else "1" for module in "".join(rows))


def encode_qr(payload: bytes, error_correction: str = "L") -> Modules:
    """Encode a QR symbol into rows of modules, without quiet zone."""
    if not payload:
        raise SymbolError("empty QR payload")

    qr = qrcode.QRCode(
        version=None,
        error_correction=QR_ERROR_LEVELS.get(error_correction, qrcode.constants.ERROR_CORRECT_L),
        box_size=1,
        border=0,
    )
    try:
        qr.add_data(payload)
        qr.make(fit=True)
    except (DataOverflowError, ValueError) as e:
        raise SymbolError(f"QR payload of {len(payload)} bytes cannot be encoded: {e}") from e

    return tuple(
        "".join("1" if dark else "0" for dark in row)
        for row in qr.get_matrix()
    )
