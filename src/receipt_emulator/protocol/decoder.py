"""ESC/POS command decoder.

Turns a raw printer byte stream into an ordered list of typed commands.
Decoding is total: bytes that do not match any known command become
``Unknown`` commands and the decoder resynchronises right after them.

Resynchronisation rules:
- an unknown ESC/GS/FS/DLE opcode consumes the prefix and the next byte
- any other unknown control byte consumes one byte
- a command whose fixed header runs past the end of the stream becomes a
  truncated ``Unknown`` holding the remaining bytes, and decoding stops
- a data payload (image, barcode, QR or downloaded image) whose declared
  length runs past the end keeps what is left; images and barcodes cut
  short fail their job when it is laid out
- GS k function A data ends at NUL, which is consumed, or at the first
  byte the symbology does not accept, where decoding carries on
"""

import logging
from typing import Iterator, List, Optional, Tuple

from receipt_emulator.protocol.commands import (
    CR,
    DLE,
    ESC,
    FF,
    FS,
    GS,
    HT,
    LF,
    NUL,
    Alignment,
    Barcode,
    Command,
    Control,
    Cut,
    FeedLine,
    Font,
    HriPosition,
    Image,
    ImageFormat,
    PrintStored,
    SetStyle,
    StoredTarget,
    Symbology,
    Text,
    Unknown,
    Unsupported,
    format_bytes,
)

logger = logging.getLogger(__name__)

Decoded = Tuple[Command, int]


# ESC t n code pages
CODE_PAGES = {
    0: "cp437",
    2: "cp850",
    3: "cp860",
    4: "cp863",
    5: "cp865",
    16: "cp1252",
    17: "cp866",
    18: "cp852",
    19: "cp858",
}

# GS k function A (m = 0..6) and function B (m = 65..73)
BARCODE_A = [
    Symbology.UPC_A,
    Symbology.UPC_E,
    Symbology.EAN13,
    Symbology.EAN8,
    Symbology.CODE39,
    Symbology.ITF,
    Symbology.CODABAR,
]
BARCODE_B = BARCODE_A + [Symbology.CODE93, Symbology.CODE128]

_DIGITS = b"0123456789"

# GS k function A: bytes each symbology accepts, any other byte ends the data
BARCODE_A_CHARSETS = {
    Symbology.UPC_A: _DIGITS,
    Symbology.UPC_E: _DIGITS,
    Symbology.EAN13: _DIGITS,
    Symbology.EAN8: _DIGITS,
    Symbology.CODE39: _DIGITS + b"ABCDEFGHIJKLMNOPQRSTUVWXYZ $%*+-./",
    Symbology.ITF: _DIGITS,
    Symbology.CODABAR: _DIGITS + b"ABCDabcd$+-./:",
}

QR_ERROR_CORRECTION = {48: "L", 49: "M", 50: "Q", 51: "H"}

# ESC x: number of fixed parameter bytes
ESC_PARAMS = {
    ord("@"): 0,
    ord("!"): 1,
    ord("-"): 1,
    ord("E"): 1,
    ord("G"): 1,
    ord("a"): 1,
    ord("M"): 1,
    ord("2"): 0,
    ord("3"): 1,
    ord("t"): 1,
    ord("d"): 1,
    ord("J"): 1,
    ord("i"): 0,
    ord("m"): 0,
}

# ESC x commands without visual effect
ESC_CONTROL = {
    ord("R"): 1,   # international character set
    ord("p"): 3,   # cash drawer pulse
    ord("="): 1,   # peripheral device
    ord("r"): 1,   # print colour
    ord("U"): 1,   # unidirectional printing
    ord("S"): 0,   # standard mode
    ord("c"): 2,   # panel buttons / paper sensors
}

# ESC x commands that are recognised but not emulated
ESC_UNSUPPORTED = {
    ord("V"): 1,   # 90 degree rotation
    ord("{"): 1,   # upside down
    ord("$"): 2,   # absolute position
    ord("\\"): 2,  # relative position
    ord(" "): 1,   # right-side character spacing
    ord("e"): 1,   # reverse feed
    ord("L"): 0,   # page mode
    ord("T"): 1,   # page mode direction
    ord("W"): 8,   # page mode print area
}

GS_PARAMS = {
    ord("!"): 1,
    ord("B"): 1,
    ord("H"): 1,
    ord("h"): 1,
    ord("w"): 1,
}

GS_CONTROL = {
    ord("b"): 1,   # smoothing
    ord("f"): 1,   # HRI font
    ord("P"): 2,   # motion units
    ord("a"): 1,   # automatic status back
    ord("I"): 1,   # printer ID
    ord("r"): 1,   # status
}

GS_UNSUPPORTED = {
    ord("L"): 2,   # left margin
    ord("W"): 2,   # print area width
    ord("/"): 1,   # print downloaded bit image
}

FS_CONTROL = {
    ord("&"): 0,
    ord("."): 0,
    ord("!"): 1,
    ord("-"): 1,
    ord("W"): 1,
    ord("C"): 1,
}

FS_UNSUPPORTED = {
    ord("p"): 2,   # print NV bit image
}

DLE_CONTROL = {
    0x04: ("DLE EOT", 1),
    0x05: ("DLE ENQ", 1),
    0x14: ("DLE DC4", 3),
}

_CUT_SIMPLE = (0, 1, 48, 49)
_CUT_WITH_FEED = (65, 66, 97, 98, 103, 104)
_CUT_PARTIAL = (1, 49, 66, 98, 104)


def _is_text(byte: int) -> bool:
    return byte >= 0x20 or byte == HT


class CommandDecoder:
    """Decoder for ESC/POS byte streams.

    The decoder keeps no state between calls, so one instance can be
    shared by any number of threads.
    """

    def decode(self, data: bytes) -> List[Command]:
        """Decode a complete stream.

        Args:
            data: Raw printer bytes

        Returns:
            Commands in stream order
        """
        return list(self.iter_commands(data))

    def iter_commands(self, data: bytes) -> Iterator[Command]:
        """Lazily decode a stream, one command at a time."""
        data = bytes(data)
        pos = 0
        while pos < len(data):
            command, pos = self._decode_at(data, pos)
            yield command

    def _decode_at(self, data: bytes, pos: int) -> Decoded:
        byte = data[pos]

        if _is_text(byte):
            end = pos
            while end < len(data) and _is_text(data[end]):
                end += 1
            return Text(data=data[pos:end], offset=pos), end

        if byte in (LF, FF):
            return FeedLine(count=1, offset=pos), pos + 1
        if byte == CR:
            return Control(mnemonic="CR", raw=data[pos:pos + 1], offset=pos), pos + 1
        if byte == NUL:
            return Control(mnemonic="NUL", raw=data[pos:pos + 1], offset=pos), pos + 1
        if byte == ESC:
            return self._decode_esc(data, pos)
        if byte == GS:
            return self._decode_gs(data, pos)
        if byte == FS:
            return self._decode_fs(data, pos)
        if byte == DLE:
            return self._decode_dle(data, pos)

        return self._unknown(data, pos, 1)

    # --- helpers ---

    def _unknown(self, data: bytes, pos: int, length: int) -> Decoded:
        raw = data[pos:pos + length]
        logger.debug(f"Unknown command at {pos}: {format_bytes(raw)}")
        return Unknown(opcode=data[pos], raw=raw, offset=pos), pos + len(raw)

    def _truncated(self, data: bytes, pos: int) -> Decoded:
        raw = data[pos:]
        logger.debug(f"Truncated command at {pos}: {format_bytes(raw)}")
        return Unknown(opcode=data[pos], raw=raw, truncated=True, offset=pos), len(data)

    def _params(self, data: bytes, start: int, count: int) -> Optional[bytes]:
        """Fixed parameter bytes starting at ``start``, or None if cut off."""
        if start + count > len(data):
            return None
        return data[start:start + count]

    def _fixed(
        self,
        data: bytes,
        pos: int,
        count: int,
        prefix: str,
        kind: type,
    ) -> Decoded:
        """Decode a two-byte opcode with ``count`` parameters as Control/Unsupported."""
        params = self._params(data, pos + 2, count)
        if params is None:
            return self._truncated(data, pos)
        end = pos + 2 + count
        mnemonic = f"{prefix} {chr(data[pos + 1])}"
        return kind(mnemonic=mnemonic, raw=data[pos:end], offset=pos), end

    # --- ESC ---

    def _decode_esc(self, data: bytes, pos: int) -> Decoded:
        if pos + 1 >= len(data):
            return self._truncated(data, pos)
        op = data[pos + 1]

        if op == ord("*"):
            return self._decode_bit_image(data, pos)
        if op == ord("D"):
            return self._decode_tabs(data, pos)
        if op in ESC_CONTROL:
            return self._fixed(data, pos, ESC_CONTROL[op], "ESC", Control)
        if op in ESC_UNSUPPORTED:
            return self._fixed(data, pos, ESC_UNSUPPORTED[op], "ESC", Unsupported)
        if op not in ESC_PARAMS:
            return self._unknown(data, pos, 2)

        count = ESC_PARAMS[op]
        params = self._params(data, pos + 2, count)
        if params is None:
            return self._truncated(data, pos)
        end = pos + 2 + count
        n = params[0] if params else 0
        char = chr(op)

        if char == "@":
            command = SetStyle(reset=True, offset=pos)
        elif char == "!":
            command = SetStyle(
                font=Font.B if n & 0x01 else Font.A,
                bold=bool(n & 0x08),
                height_scale=2 if n & 0x10 else 1,
                width_scale=2 if n & 0x20 else 1,
                underline=1 if n & 0x80 else 0,
                offset=pos,
            )
        elif char == "-":
            command = SetStyle(underline=min(n & 0x03, 2), offset=pos)
        elif char in ("E", "G"):
            command = SetStyle(bold=bool(n & 0x01), offset=pos)
        elif char == "a":
            alignment = {1: Alignment.CENTER, 2: Alignment.RIGHT}.get(n & 0x03, Alignment.LEFT)
            command = SetStyle(alignment=alignment, offset=pos)
        elif char == "M":
            command = SetStyle(font=Font.B if n in (1, 49) else Font.A, offset=pos)
        elif char == "2":
            command = SetStyle(line_spacing=0, offset=pos)
        elif char == "3":
            command = SetStyle(line_spacing=n, offset=pos)
        elif char == "t":
            if n not in CODE_PAGES:
                return Unsupported(mnemonic=f"ESC t {n}", raw=data[pos:end], offset=pos), end
            command = SetStyle(code_page=CODE_PAGES[n], offset=pos)
        elif char == "d":
            command = FeedLine(count=n, offset=pos)
        elif char == "J":
            command = FeedLine(count=n, dots=True, offset=pos)
        else:
            command = Cut(partial=char == "m", offset=pos)

        return command, end

    def _decode_bit_image(self, data: bytes, pos: int) -> Decoded:
        """ESC * m nL nH d1...dk - column format bit image."""
        header = self._params(data, pos + 2, 3)
        if header is None:
            return self._truncated(data, pos)
        mode, n_low, n_high = header
        columns = n_low + n_high * 256
        start = pos + 5

        if mode in (0, 1):
            image_format = ImageFormat.COLUMN8
            height = 8
        elif mode in (32, 33):
            image_format = ImageFormat.COLUMN24
            height = 24
        else:
            return Unsupported(mnemonic=f"ESC * {mode}", raw=data[pos:start], offset=pos), start

        payload = data[start:start + columns * (height // 8)]
        command = Image(
            width=columns,
            height=height,
            data=payload,
            format=image_format,
            scale_x=2 if mode in (0, 32) else 1,
            offset=pos,
        )
        return command, start + len(payload)

    def _decode_tabs(self, data: bytes, pos: int) -> Decoded:
        """ESC D n1...nk NUL - horizontal tab positions (at most 32)."""
        limit = pos + 2 + 33
        end = data.find(b"\x00", pos + 2, limit)
        if end == -1:
            if limit > len(data):
                return self._truncated(data, pos)
            end = limit - 1
        return Unsupported(mnemonic="ESC D", raw=data[pos:end + 1], offset=pos), end + 1

    # --- GS ---

    def _decode_gs(self, data: bytes, pos: int) -> Decoded:
        if pos + 1 >= len(data):
            return self._truncated(data, pos)
        op = data[pos + 1]
        char = chr(op)

        if char == "V":
            return self._decode_cut(data, pos)
        if char == "v":
            return self._decode_raster(data, pos)
        if char == "k":
            return self._decode_barcode(data, pos)
        if char == "(":
            return self._decode_extended(data, pos)
        if char == "8":
            return self._decode_extended_long(data, pos)
        if char == "*":
            return self._decode_download(data, pos)
        if op in GS_CONTROL:
            return self._fixed(data, pos, GS_CONTROL[op], "GS", Control)
        if op in GS_UNSUPPORTED:
            return self._fixed(data, pos, GS_UNSUPPORTED[op], "GS", Unsupported)
        if op not in GS_PARAMS:
            return self._unknown(data, pos, 2)

        params = self._params(data, pos + 2, GS_PARAMS[op])
        if params is None:
            return self._truncated(data, pos)
        n = params[0]
        end = pos + 3

        if char == "!":
            command = SetStyle(
                width_scale=((n >> 4) & 0x07) + 1,
                height_scale=(n & 0x07) + 1,
                offset=pos,
            )
        elif char == "B":
            command = SetStyle(invert=bool(n & 0x01), offset=pos)
        elif char == "H":
            command = SetStyle(hri_position=HriPosition(n & 0x03), offset=pos)
        elif char == "h":
            command = SetStyle(barcode_height=max(1, n), offset=pos)
        else:
            command = SetStyle(barcode_module=min(max(1, n), 6), offset=pos)

        return command, end

    def _decode_cut(self, data: bytes, pos: int) -> Decoded:
        """GS V m [n] - select cut mode and cut paper."""
        params = self._params(data, pos + 2, 1)
        if params is None:
            return self._truncated(data, pos)
        mode = params[0]
        partial = mode in _CUT_PARTIAL

        if mode in _CUT_SIMPLE:
            return Cut(partial=partial, offset=pos), pos + 3
        if mode in _CUT_WITH_FEED:
            feed = self._params(data, pos + 3, 1)
            if feed is None:
                return self._truncated(data, pos)
            return Cut(partial=partial, feed=feed[0], offset=pos), pos + 4
        return self._unknown(data, pos, 3)

    def _decode_raster(self, data: bytes, pos: int) -> Decoded:
        """GS v 0 m xL xH yL yH d1...dk - raster bit image."""
        header = self._params(data, pos + 2, 6)
        if header is None:
            return self._truncated(data, pos)
        if header[0] != 0x30:
            return self._unknown(data, pos, 2)

        mode, x_low, x_high, y_low, y_high = header[1:]
        width_bytes = x_low + x_high * 256
        height = y_low + y_high * 256
        start = pos + 8
        payload = data[start:start + width_bytes * height]

        command = Image(
            width=width_bytes * 8,
            height=height,
            data=payload,
            scale_x=2 if mode & 0x01 else 1,
            scale_y=2 if mode & 0x02 else 1,
            offset=pos,
        )
        return command, start + len(payload)

    def _decode_barcode(self, data: bytes, pos: int) -> Decoded:
        """GS k m d1...dk NUL (function A) or GS k m n d1...dn (function B)."""
        params = self._params(data, pos + 2, 1)
        if params is None:
            return self._truncated(data, pos)
        mode = params[0]

        if mode < len(BARCODE_A):
            symbology = BARCODE_A[mode]
            charset = BARCODE_A_CHARSETS[symbology]
            end = pos + 3
            while end < len(data) and data[end] in charset:
                end += 1
            payload = data[pos + 3:end]
            if end == len(data):
                return Barcode(symbology=symbology, payload=payload, truncated=True, offset=pos), end
            command = Barcode(symbology=symbology, payload=payload, offset=pos)
            # NUL belongs to the barcode, any other byte starts the next command
            return command, end + 1 if data[end] == NUL else end

        if 65 <= mode < 65 + len(BARCODE_B):
            length = self._params(data, pos + 3, 1)
            if length is None:
                return self._truncated(data, pos)
            start = pos + 4
            payload = data[start:start + length[0]]
            command = Barcode(
                symbology=BARCODE_B[mode - 65],
                payload=payload,
                truncated=len(payload) < length[0],
                offset=pos,
            )
            return command, start + len(payload)

        return self._unknown(data, pos, 3)

    def _decode_extended(self, data: bytes, pos: int) -> Decoded:
        """GS ( fn pL pH ... - functions with a two byte length."""
        header = self._params(data, pos + 2, 3)
        if header is None:
            return self._truncated(data, pos)
        function, p_low, p_high = header
        size = p_low + p_high * 256
        return self._dispatch_extended(data, pos, function, size, pos + 5, "GS (")

    def _decode_extended_long(self, data: bytes, pos: int) -> Decoded:
        """GS 8 L p1 p2 p3 p4 ... - graphics functions with a four byte length."""
        header = self._params(data, pos + 2, 5)
        if header is None:
            return self._truncated(data, pos)
        if header[0] != ord("L"):
            return self._unknown(data, pos, 2)
        size = int.from_bytes(header[1:5], "little")
        return self._dispatch_extended(data, pos, header[0], size, pos + 7, "GS 8")

    def _dispatch_extended(
        self,
        data: bytes,
        pos: int,
        function: int,
        size: int,
        start: int,
        prefix: str,
    ) -> Decoded:
        body = data[start:start + size]
        end = start + len(body)
        complete = len(body) == size

        if function == ord("L"):
            if len(body) >= 2 and body[1] == 112:
                return self._stored_graphics(body, pos), end
            if not complete:
                return self._truncated(data, pos)
            if len(body) >= 2 and body[1] in (50, 2):
                return PrintStored(target=StoredTarget.GRAPHICS, offset=pos), end
            fn = body[1] if len(body) >= 2 else 0
            return Unsupported(mnemonic=f"{prefix} L fn {fn}", raw=data[pos:end], offset=pos), end

        if function == ord("k") and (complete or body[:2] == b"1P"):
            return self._symbol(body, data[pos:end], pos, complete), end
        if not complete:
            return self._truncated(data, pos)
        return Unsupported(mnemonic=f"{prefix} {chr(function)}", raw=data[pos:end], offset=pos), end

    def _stored_graphics(self, body: bytes, pos: int) -> Image:
        """GS ( L fn 112: a bx by c xL xH yL yH d1...dk into the graphics buffer."""
        header = body[2:10]
        if len(header) < 8:
            return Image(width=0, height=0, data=b"", stored=True, offset=pos)
        _, scale_x, scale_y, _, x_low, x_high, y_low, y_high = header
        return Image(
            width=x_low + x_high * 256,
            height=y_low + y_high * 256,
            data=body[10:],
            scale_x=2 if scale_x == 2 else 1,
            scale_y=2 if scale_y == 2 else 1,
            stored=True,
            offset=pos,
        )

    def _symbol(self, body: bytes, raw: bytes, pos: int, complete: bool = True) -> Command:
        """GS ( k cn fn ... - 2D symbols; only QR (cn = 49) is emulated.

        Only a QR store (fn 80) arrives here with an incomplete body.
        """
        if len(body) < 2 or body[0] != 49:
            cn = body[0] if body else 0
            return Unsupported(mnemonic=f"GS ( k cn {cn}", raw=raw, offset=pos)

        fn = body[1]
        arg = body[2] if len(body) > 2 else 0
        if fn == 67:
            return SetStyle(qr_module_size=min(max(1, arg), 16), offset=pos)
        if fn == 69:
            return SetStyle(qr_error_correction=QR_ERROR_CORRECTION.get(arg, "L"), offset=pos)
        if fn == 80:
            return Barcode(
                symbology=Symbology.QR,
                payload=body[3:],
                stored=True,
                truncated=not complete,
                offset=pos,
            )
        if fn == 81:
            return PrintStored(target=StoredTarget.QR, offset=pos)
        if fn in (65, 82):
            return Control(mnemonic=f"GS ( k QR fn {fn}", raw=raw, offset=pos)
        return Unsupported(mnemonic=f"GS ( k QR fn {fn}", raw=raw, offset=pos)

    def _decode_download(self, data: bytes, pos: int) -> Decoded:
        """GS * x y d1...d(x*y*8) - define downloaded bit image."""
        header = self._params(data, pos + 2, 2)
        if header is None:
            return self._truncated(data, pos)
        end = min(pos + 4 + header[0] * header[1] * 8, len(data))
        return Unsupported(mnemonic="GS *", raw=data[pos:end], offset=pos), end

    # --- FS / DLE ---

    def _decode_fs(self, data: bytes, pos: int) -> Decoded:
        if pos + 1 >= len(data):
            return self._truncated(data, pos)
        op = data[pos + 1]
        if op in FS_CONTROL:
            return self._fixed(data, pos, FS_CONTROL[op], "FS", Control)
        if op in FS_UNSUPPORTED:
            return self._fixed(data, pos, FS_UNSUPPORTED[op], "FS", Unsupported)
        return self._unknown(data, pos, 2)

    def _decode_dle(self, data: bytes, pos: int) -> Decoded:
        if pos + 1 >= len(data):
            return self._truncated(data, pos)
        op = data[pos + 1]
        if op not in DLE_CONTROL:
            return self._unknown(data, pos, 2)
        mnemonic, count = DLE_CONTROL[op]
        if self._params(data, pos + 2, count) is None:
            return self._truncated(data, pos)
        end = pos + 2 + count
        return Control(mnemonic=mnemonic, raw=data[pos:end], offset=pos), end


def decode(data: bytes) -> List[Command]:
    """Decode a byte stream with a default decoder."""
    return CommandDecoder().decode(data)
