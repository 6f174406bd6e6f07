"""Render-ready document model.

A Document is the laid out form of one print job: an ordered list of
blocks whose heights (in printer dots) are already resolved, so every
renderer stacks them the same way.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from receipt_emulator.errors import RenderError
from receipt_emulator.protocol.commands import Alignment, Font, HriPosition, Symbology

# 80mm paper is 576 dots at 203 DPI, 58mm paper is 384 dots
PAGE_WIDTH_80MM = 576
PAGE_WIDTH_58MM = 384


@dataclass(frozen=True)
class FontProfile:
    """Character cell metrics of the resident fonts, in dots."""

    font_a: Tuple[int, int] = (12, 24)
    font_b: Tuple[int, int] = (9, 17)
    line_spacing: int = 30
    font_path: Optional[str] = None

    def cell(self, font: Font) -> Tuple[int, int]:
        """(width, height) of one character cell at scale 1."""
        return self.font_b if font is Font.B else self.font_a


@dataclass(frozen=True)
class TextStyle:
    """Character attributes captured when text is laid out."""

    bold: bool = False
    underline: int = 0  # 0 off, 1 or 2 dots thick
    invert: bool = False
    font: Font = Font.A
    width_scale: int = 1
    height_scale: int = 1

    def cell(self, profile: FontProfile) -> Tuple[int, int]:
        """Scaled (width, height) of one character cell."""
        width, height = profile.cell(self.font)
        return width * self.width_scale, height * self.height_scale


@dataclass(frozen=True)
class BarcodeSettings:
    """Barcode parameters set by GS h / GS w / GS H and GS ( k."""

    height: int = 162
    module_width: int = 3
    hri_position: HriPosition = HriPosition.NONE
    qr_module_size: int = 3
    qr_error_correction: str = "L"


@dataclass(frozen=True)
class TextSpan:
    """Run of characters sharing one style."""

    text: str
    style: TextStyle


@dataclass(frozen=True)
class TextRun:
    """One printed line of text."""

    spans: Tuple[TextSpan, ...]
    alignment: Alignment
    width: int
    height: int
    glyph_height: int

    @property
    def text(self) -> str:
        return "".join(span.text for span in self.spans)


@dataclass(frozen=True)
class SpacerBlock:
    """Blank paper fed between printed blocks."""

    height: int


@dataclass(frozen=True)
class ImageBlock:
    """A bit image.

    ``bitmap`` holds ``source_height`` rows of packed bits (MSB first,
    1 = black), each ``(source_width + 7) // 8`` bytes long. ``width`` and
    ``height`` are the printed size after scaling to the page.
    """

    source_width: int
    source_height: int
    bitmap: bytes
    width: int
    height: int
    alignment: Alignment = Alignment.LEFT

    @property
    def stride(self) -> int:
        return (self.source_width + 7) // 8


@dataclass(frozen=True)
class BarcodeBlock:
    """A 1D barcode or QR symbol.

    ``modules`` are rows of '1'/'0'; each module is printed as a
    ``module_width`` x ``module_height`` rectangle.
    """

    symbology: Symbology
    text: str
    modules: Tuple[str, ...]
    module_width: int
    module_height: int
    hri_position: HriPosition = HriPosition.NONE
    hri_height: int = 0
    alignment: Alignment = Alignment.LEFT

    @property
    def symbol_width(self) -> int:
        return len(self.modules[0]) * self.module_width if self.modules else 0

    @property
    def symbol_height(self) -> int:
        return len(self.modules) * self.module_height

    @property
    def hri_lines(self) -> int:
        return {
            HriPosition.NONE: 0,
            HriPosition.ABOVE: 1,
            HriPosition.BELOW: 1,
            HriPosition.BOTH: 2,
        }[self.hri_position]

    @property
    def width(self) -> int:
        return self.symbol_width

    @property
    def height(self) -> int:
        return self.symbol_height + self.hri_lines * self.hri_height


Block = Union[TextRun, SpacerBlock, ImageBlock, BarcodeBlock]


@dataclass(frozen=True)
class Document:
    """Laid out content of one job."""

    job_index: int
    page_width: int
    profile: FontProfile
    blocks: Tuple[Block, ...] = ()
    diagnostics: Tuple[RenderError, ...] = field(default=())

    @property
    def height(self) -> int:
        """Total paper length in dots."""
        return sum(block.height for block in self.blocks)

    def text_lines(self) -> Tuple[str, ...]:
        """Plain text of every printed line, for previews and tests."""
        return tuple(block.text for block in self.blocks if isinstance(block, TextRun))

    def __len__(self) -> int:
        return len(self.blocks)
