"""Raster backend: renders a Document to a pixel buffer.

The canvas is one page wide and exactly as tall as the document. Blocks
are painted top to bottom in document order; black dots are ink (0),
everything else is paper (255).
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
from numpy.typing import NDArray
from PIL import Image

from receipt_emulator.errors import RenderError, RenderErrorKind
from receipt_emulator.printing.document import (
    BarcodeBlock,
    Document,
    FontProfile,
    ImageBlock,
    SpacerBlock,
    TextRun,
    TextStyle,
)
from receipt_emulator.protocol.commands import HriPosition
from receipt_emulator.render.base import Renderer, x_offset
from receipt_emulator.render.bitmaps import image_mask, symbol_mask
from receipt_emulator.render.fonts import glyph_mask

logger = logging.getLogger(__name__)

INK = 0
PAPER = 255

CHANNELS = {"grayscale": 1, "rgb": 3, "rgba": 4}
PIL_MODES = {1: "L", 3: "RGB", 4: "RGBA"}


@dataclass(frozen=True)
class ReceiptImage:
    """Pixel buffer of one receipt, row-major, ``channels`` bytes per pixel."""

    job_index: int
    width: int
    height: int
    channels: int
    data: bytes

    @property
    def is_empty(self) -> bool:
        return self.height == 0

    def to_array(self) -> NDArray[np.uint8]:
        """View of the pixels with shape (height, width, channels)."""
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, self.channels)

    def to_pil(self) -> Image.Image:
        """Convert to a PIL Image for previews."""
        if self.is_empty:
            raise ValueError(f"Receipt {self.job_index} has no printed content")
        return Image.frombytes(PIL_MODES[self.channels], (self.width, self.height), self.data)

    def save(self, path: Union[str, Path], format: Optional[str] = None) -> None:
        """Save as BMP or PNG (format inferred from the extension by default)."""
        img = self.to_pil()
        if format and format.upper() == "BMP" and img.mode == "RGBA":
            # BMP cannot hold alpha
            img = img.convert("RGB")
        img.save(path, format=format)
        logger.debug(f"Saved receipt {self.job_index} to {path}")


class ImageRenderer(Renderer[ReceiptImage]):
    """Renders documents to pixel buffers."""

    def __init__(self, channel_format: str = "rgb", font_path: Optional[str] = None):
        """
        Args:
            channel_format: "rgb", "rgba" or "grayscale"
            font_path: TrueType font overriding the document's font profile
        """
        if channel_format not in CHANNELS:
            raise ValueError(f"Unknown channel format {channel_format!r}, expected one of {sorted(CHANNELS)}")
        self.channel_format = channel_format
        self.channels = CHANNELS[channel_format]
        self.font_path = font_path

    @classmethod
    def from_settings(cls, settings) -> "ImageRenderer":
        font_path = str(settings.font.font_path) if settings.font.font_path else None
        return cls(channel_format=settings.channel_format, font_path=font_path)

    @property
    def name(self) -> str:
        return "image"

    def render(self, document: Document) -> ReceiptImage:
        canvas = np.full((document.height, document.page_width), PAPER, dtype=np.uint8)

        y_pos = 0
        for block in document.blocks:
            if isinstance(block, TextRun):
                self._draw_text_run(canvas, block, y_pos, document.profile)
            elif isinstance(block, ImageBlock):
                self._paint(canvas, image_mask(block), x_offset(block.alignment, block.width, canvas.shape[1]), y_pos)
            elif isinstance(block, BarcodeBlock):
                self._draw_barcode(canvas, block, y_pos, document.profile)
            elif not isinstance(block, SpacerBlock):
                raise RenderError(
                    RenderErrorKind.INTERNAL,
                    f"cannot render block {type(block).__name__}",
                    job_index=document.job_index,
                )
            y_pos += block.height

        return ReceiptImage(
            job_index=document.job_index,
            width=document.page_width,
            height=document.height,
            channels=self.channels,
            data=self._to_channels(canvas).tobytes(),
        )

    def _to_channels(self, canvas: NDArray[np.uint8]) -> NDArray[np.uint8]:
        gray = canvas[:, :, np.newaxis]
        if self.channels == 1:
            return gray
        rgb = np.repeat(gray, 3, axis=2)
        if self.channels == 3:
            return rgb
        alpha = np.full(gray.shape, 255, dtype=np.uint8)
        return np.concatenate([rgb, alpha], axis=2)

    def _paint(self, canvas: NDArray[np.uint8], mask, x: int, y: int) -> None:
        """Set the True dots of ``mask`` to ink, clipped to the canvas."""
        height = min(mask.shape[0], canvas.shape[0] - y)
        width = min(mask.shape[1], canvas.shape[1] - x)
        if height <= 0 or width <= 0:
            return
        region = canvas[y:y + height, x:x + width]
        region[mask[:height, :width]] = INK

    def _draw_text_run(self, canvas: NDArray[np.uint8], run: TextRun, y_pos: int, profile: FontProfile) -> None:
        x_pos = x_offset(run.alignment, run.width, canvas.shape[1])
        for span in run.spans:
            # Glyphs of different heights share the baseline at the bottom of the line
            cell_height = span.style.cell(profile)[1]
            x_pos = self._draw_string(
                canvas, span.text, x_pos, y_pos + run.glyph_height - cell_height, span.style, profile,
            )

    def _draw_string(
        self,
        canvas: NDArray[np.uint8],
        text: str,
        x_pos: int,
        y_pos: int,
        style: TextStyle,
        profile: FontProfile,
    ) -> int:
        """Draw characters left to right and return the x position after them."""
        width, height = style.cell(profile)
        font_path = self.font_path or profile.font_path

        for char in text:
            if x_pos >= canvas.shape[1]:
                break
            dots = glyph_mask(char, width, height, style.bold, font_path)
            if style.underline:
                dots = dots.copy()
                dots[height - style.underline:, :] = True
            if style.invert:
                dots = ~dots
            self._paint(canvas, dots, x_pos, y_pos)
            x_pos += width

        return x_pos

    def _draw_barcode(self, canvas: NDArray[np.uint8], block: BarcodeBlock, y_pos: int, profile: FontProfile) -> None:
        x_pos = x_offset(block.alignment, block.width, canvas.shape[1])

        if block.hri_position in (HriPosition.ABOVE, HriPosition.BOTH):
            self._draw_hri(canvas, block, x_pos, y_pos, profile)
            y_pos += block.hri_height

        self._paint(canvas, symbol_mask(block), x_pos, y_pos)
        y_pos += block.symbol_height

        if block.hri_position in (HriPosition.BELOW, HriPosition.BOTH):
            self._draw_hri(canvas, block, x_pos, y_pos, profile)

    def _draw_hri(self, canvas: NDArray[np.uint8], block: BarcodeBlock, x_pos: int, y_pos: int, profile: FontProfile) -> None:
        style = TextStyle()
        text_width = len(block.text) * style.cell(profile)[0]
        start = max(0, x_pos + (block.symbol_width - text_width) // 2)
        self._draw_string(canvas, block.text, start, y_pos, style, profile)
