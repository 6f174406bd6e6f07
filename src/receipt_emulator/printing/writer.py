"""ESC/POS command writer.

Builds printer byte streams with a fluent interface, for feeding the
emulator in tests and for producing sample receipts.

Example:
    data = (
        EscPosWriter()
        .init()
        .align(Alignment.CENTER)
        .bold()
        .line("RECEIPT")
        .bold(False)
        .qr("https://example.com")
        .cut()
        .build()
    )
"""

from typing import Optional

from PIL import Image

from receipt_emulator.protocol.commands import Alignment, Font, HriPosition, Symbology


# GS k function B symbology numbers
BARCODE_CODES = {
    Symbology.UPC_A: 65,
    Symbology.UPC_E: 66,
    Symbology.EAN13: 67,
    Symbology.EAN8: 68,
    Symbology.CODE39: 69,
    Symbology.ITF: 70,
    Symbology.CODABAR: 71,
    Symbology.CODE93: 72,
    Symbology.CODE128: 73,
}

QR_ERROR_CODES = {"L": 48, "M": 49, "Q": 50, "H": 51}

# GS ( L fn 112 limits
MAX_GRAPHICS_WIDTH = 2047
MAX_GRAPHICS_HEIGHT = 1662


class EscPosWriter:
    """Fluent builder for ESC/POS byte streams."""

    # ESC/POS command constants
    ESC = b'\x1b'
    GS = b'\x1d'
    LF = b'\x0a'

    def __init__(self, code_page: str = "cp437"):
        self.encoding = code_page
        self._buffer = bytearray()

    def build(self) -> bytes:
        """Return the bytes written so far."""
        return bytes(self._buffer)

    def raw(self, data: bytes) -> "EscPosWriter":
        """Append bytes verbatim."""
        self._buffer += data
        return self

    def __len__(self) -> int:
        return len(self._buffer)

    # --- text ---

    def init(self) -> "EscPosWriter":
        """ESC @ - Initialize printer."""
        return self.raw(self.ESC + b'@')

    def text(self, text: str) -> "EscPosWriter":
        """Append text without a line feed."""
        return self.raw(text.encode(self.encoding, errors="replace"))

    def line(self, text: str = "") -> "EscPosWriter":
        """Append text followed by LF."""
        return self.text(text).raw(self.LF)

    def bold(self, enabled: bool = True) -> "EscPosWriter":
        """ESC E n - Turn emphasized mode on/off."""
        return self.raw(self.ESC + b'E' + (b'\x01' if enabled else b'\x00'))

    def underline(self, thickness: int = 1) -> "EscPosWriter":
        """ESC - n - Underline off (0), 1 dot or 2 dots."""
        return self.raw(self.ESC + b'-' + bytes([min(max(thickness, 0), 2)]))

    def align(self, alignment: Alignment) -> "EscPosWriter":
        """ESC a n - Select justification."""
        align_byte = {
            Alignment.LEFT: b'\x00',
            Alignment.CENTER: b'\x01',
            Alignment.RIGHT: b'\x02',
        }
        return self.raw(self.ESC + b'a' + align_byte.get(alignment, b'\x00'))

    def size(self, width: int = 1, height: int = 1) -> "EscPosWriter":
        """GS ! n - Select character size (1-8 times normal)."""
        if not (1 <= width <= 8 and 1 <= height <= 8):
            raise ValueError(f"character size must be 1-8, got {width}x{height}")
        return self.raw(self.GS + b'!' + bytes([(width - 1) << 4 | (height - 1)]))

    def font(self, font: Font) -> "EscPosWriter":
        """ESC M n - Select character font."""
        return self.raw(self.ESC + b'M' + (b'\x01' if font is Font.B else b'\x00'))

    def invert(self, enabled: bool = True) -> "EscPosWriter":
        """GS B n - White/black reverse printing."""
        return self.raw(self.GS + b'B' + (b'\x01' if enabled else b'\x00'))

    def line_spacing(self, dots: Optional[int] = None) -> "EscPosWriter":
        """ESC 3 n - Set line spacing, or ESC 2 for the default."""
        if dots is None:
            return self.raw(self.ESC + b'2')
        return self.raw(self.ESC + b'3' + bytes([dots & 0xFF]))

    def code_page(self, number: int, codec: str) -> "EscPosWriter":
        """ESC t n - Select character code table; later text is encoded with ``codec``."""
        self.encoding = codec
        return self.raw(self.ESC + b't' + bytes([number & 0xFF]))

    # --- paper ---

    def feed(self, lines: int = 1) -> "EscPosWriter":
        """ESC d n - Print and feed n lines."""
        return self.raw(self.ESC + b'd' + bytes([lines & 0xFF]))

    def feed_dots(self, dots: int) -> "EscPosWriter":
        """ESC J n - Print and feed n dots."""
        return self.raw(self.ESC + b'J' + bytes([dots & 0xFF]))

    def cut(self, partial: bool = True, feed: int = 0) -> "EscPosWriter":
        """GS V - Cut paper, optionally feeding first."""
        if feed:
            return self.raw(self.GS + b'V' + (b'B' if partial else b'A') + bytes([feed & 0xFF]))
        return self.raw(self.GS + b'V' + (b'\x01' if partial else b'\x00'))

    # --- images ---

    def image(self, img: Image.Image, scale_x: int = 1, scale_y: int = 1) -> "EscPosWriter":
        """GS v 0 - Print raster bit image."""
        from receipt_emulator.utils.image import image_to_bitmap

        width, height = img.size
        bytes_per_line = (width + 7) // 8
        mode = (1 if scale_x == 2 else 0) | (2 if scale_y == 2 else 0)

        # Format: GS v 0 m xL xH yL yH data
        self.raw(self.GS + b'v0')
        self.raw(bytes([mode]))
        self.raw(bytes([bytes_per_line & 0xFF, (bytes_per_line >> 8) & 0xFF]))
        self.raw(bytes([height & 0xFF, (height >> 8) & 0xFF]))
        return self.raw(image_to_bitmap(img))

    def store_graphics(
        self,
        bitmap: bytes,
        width: int,
        height: int,
        scale_x: int = 1,
        scale_y: int = 1,
    ) -> "EscPosWriter":
        """GS ( L fn 112 - Store raster graphics data in the print buffer.

        Args:
            bitmap: Packed rows, MSB first, 1 = black
            width: Width in dots (1-2047)
            height: Height in dots (1-1662, or 1-831 when scale_y is 2)
            scale_x: Horizontal scale, 1 or 2
            scale_y: Vertical scale, 1 or 2
        """
        if scale_x not in (1, 2) or scale_y not in (1, 2):
            raise ValueError(f"graphics scale must be 1 or 2, got {scale_x}x{scale_y}")
        max_height = MAX_GRAPHICS_HEIGHT if scale_y == 1 else MAX_GRAPHICS_HEIGHT // 2
        if not (1 <= width <= MAX_GRAPHICS_WIDTH and 1 <= height <= max_height):
            raise ValueError(f"graphics size {width}x{height} out of range")
        if len(bitmap) != (width + 7) // 8 * height:
            raise ValueError(f"bitmap has {len(bitmap)} bytes, {width}x{height} needs {(width + 7) // 8 * height}")

        size = 10 + len(bitmap)
        if size > 0xFFFF:
            raise ValueError(f"graphics data of {len(bitmap)} bytes does not fit GS ( L")

        # pL pH m fn a bx by c xL xH yL yH
        header = bytes([
            size & 0xFF, (size >> 8) & 0xFF,
            48, 112, 48, scale_x, scale_y, 49,
            width & 0xFF, (width >> 8) & 0xFF,
            height & 0xFF, (height >> 8) & 0xFF,
        ])
        return self.raw(self.GS + b'(L' + header + bitmap)

    def print_graphics(self) -> "EscPosWriter":
        """GS ( L fn 50 - Print the graphics data in the print buffer."""
        return self.raw(self.GS + b'(L\x02\x00\x30\x32')

    # --- barcodes ---

    def barcode_settings(
        self,
        height: Optional[int] = None,
        module_width: Optional[int] = None,
        hri: Optional[HriPosition] = None,
    ) -> "EscPosWriter":
        """GS h / GS w / GS H - Barcode height, module width and HRI position."""
        if height is not None:
            self.raw(self.GS + b'h' + bytes([min(max(height, 1), 255)]))
        if module_width is not None:
            self.raw(self.GS + b'w' + bytes([min(max(module_width, 1), 6)]))
        if hri is not None:
            self.raw(self.GS + b'H' + bytes([hri.value]))
        return self

    def barcode(self, symbology: Symbology, data: str) -> "EscPosWriter":
        """GS k m n d1...dn - Print barcode (function B)."""
        code = BARCODE_CODES.get(symbology)
        if code is None:
            raise ValueError(f"{symbology.value} is not a GS k symbology")
        payload = data.encode("ascii")
        if len(payload) > 255:
            raise ValueError(f"barcode data too long ({len(payload)} bytes)")
        return self.raw(self.GS + b'k' + bytes([code, len(payload)]) + payload)

    def qr(self, data: str, module_size: int = 3, error_correction: str = "L") -> "EscPosWriter":
        """GS ( k - Set up, store and print a QR code."""
        if error_correction not in QR_ERROR_CODES:
            raise ValueError(f"unknown QR error correction level {error_correction!r}")
        payload = data.encode("utf-8")
        size = len(payload) + 3
        if size > 0xFFFF:
            raise ValueError(f"QR data too long ({len(payload)} bytes)")

        # fn 67 module size, fn 69 error correction, fn 80 store, fn 81 print
        self.raw(self.GS + b'(k\x03\x001C' + bytes([min(max(module_size, 1), 16)]))
        self.raw(self.GS + b'(k\x03\x001E' + bytes([QR_ERROR_CODES[error_correction]]))
        self.raw(self.GS + b'(k' + bytes([size & 0xFF, (size >> 8) & 0xFF]) + b'1P0' + payload)
        return self.raw(self.GS + b'(k\x03\x001Q0')
