"""Typed ESC/POS commands produced by the decoder.

Every command is an immutable dataclass carrying the byte offset of its
opcode in the source stream, so diagnostics can point back at the input.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# Control bytes
NUL = 0x00
HT = 0x09
LF = 0x0A
FF = 0x0C
CR = 0x0D
DLE = 0x10
ESC = 0x1B
FS = 0x1C
GS = 0x1D


class Alignment(Enum):
    """Text alignment options."""

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class Font(Enum):
    """Resident printer fonts."""

    A = "a"
    B = "b"


class HriPosition(Enum):
    """Where human readable barcode text is printed."""

    NONE = 0
    ABOVE = 1
    BELOW = 2
    BOTH = 3


class Symbology(Enum):
    """Barcode symbologies understood by GS k and GS ( k."""

    UPC_A = "upca"
    UPC_E = "upce"
    EAN13 = "ean13"
    EAN8 = "ean8"
    CODE39 = "code39"
    ITF = "itf"
    CODABAR = "codabar"
    CODE93 = "code93"
    CODE128 = "code128"
    QR = "qr"


class ImageFormat(Enum):
    """Pixel layout of an image payload."""

    RASTER = "raster"      # rows of packed bits, MSB first
    COLUMN8 = "column8"    # ESC * 8-dot columns, one byte per column
    COLUMN24 = "column24"  # ESC * 24-dot columns, three bytes per column


class StoredTarget(Enum):
    """Print buffers that are filled first and printed by a later command."""

    GRAPHICS = "graphics"
    QR = "qr"


def format_bytes(raw: bytes) -> str:
    """Hex dump used in command descriptions."""
    return " ".join(f"{b:02X}" for b in raw)


@dataclass(frozen=True, kw_only=True)
class Command:
    """Base class for decoded commands."""

    offset: int = 0


@dataclass(frozen=True, kw_only=True)
class Text(Command):
    """Printable bytes, decoded with the active code page at layout time."""

    data: bytes


@dataclass(frozen=True, kw_only=True)
class SetStyle(Command):
    """Partial update of the print settings.

    Fields left as None keep their current value. ``line_spacing=0``
    restores the default spacing of the font profile.
    """

    reset: bool = False
    bold: Optional[bool] = None
    underline: Optional[int] = None
    alignment: Optional[Alignment] = None
    width_scale: Optional[int] = None
    height_scale: Optional[int] = None
    invert: Optional[bool] = None
    font: Optional[Font] = None
    line_spacing: Optional[int] = None
    code_page: Optional[str] = None
    barcode_height: Optional[int] = None
    barcode_module: Optional[int] = None
    hri_position: Optional[HriPosition] = None
    qr_module_size: Optional[int] = None
    qr_error_correction: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class FeedLine(Command):
    """Print the pending line and feed paper by lines or dots."""

    count: int = 1
    dots: bool = False


@dataclass(frozen=True, kw_only=True)
class Cut(Command):
    """End of a physical receipt."""

    partial: bool = False
    feed: int = 0


@dataclass(frozen=True, kw_only=True)
class Image(Command):
    """A bit image.

    ``width`` and ``height`` are in dots; ``data`` is the payload exactly as
    it appeared in the stream, which may not match the declared size.
    """

    width: int
    height: int
    data: bytes
    format: ImageFormat = ImageFormat.RASTER
    scale_x: int = 1
    scale_y: int = 1
    stored: bool = False

    @property
    def expected_size(self) -> int:
        """Number of payload bytes the declared dimensions require."""
        if self.format is ImageFormat.COLUMN8:
            return self.width
        if self.format is ImageFormat.COLUMN24:
            return self.width * 3
        return ((self.width + 7) // 8) * self.height


@dataclass(frozen=True, kw_only=True)
class Barcode(Command):
    """A 1D barcode or a QR code payload.

    ``truncated`` is set when the stream ended before the payload did;
    ``payload`` then holds the bytes that were there.
    """

    symbology: Symbology
    payload: bytes
    stored: bool = False
    truncated: bool = False


@dataclass(frozen=True, kw_only=True)
class PrintStored(Command):
    """Print the contents of a stored graphics or QR buffer."""

    target: StoredTarget


@dataclass(frozen=True, kw_only=True)
class Control(Command):
    """Recognised command without any visual effect (status, drawer, ...)."""

    mnemonic: str
    raw: bytes = b""


@dataclass(frozen=True, kw_only=True)
class Unsupported(Command):
    """Recognised command that the emulator does not implement."""

    mnemonic: str
    raw: bytes = b""


@dataclass(frozen=True, kw_only=True)
class Unknown(Command):
    """Bytes that could not be matched to any command."""

    opcode: int
    raw: bytes
    truncated: bool = False

    @property
    def mnemonic(self) -> str:
        return format_bytes(self.raw[:2]) if self.raw else f"{self.opcode:02X}"
