"""Glyph rasterization for the image renderer.

Characters are drawn with a monospace TrueType font and squeezed into
the printer's character cell. Rendered glyphs are cached; FreeType
access is serialized because font objects are shared between threads.
"""

import logging
import threading
from functools import lru_cache
from typing import Optional

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from receipt_emulator.render.bitmaps import Mask

logger = logging.getLogger(__name__)

# Font paths to try, in order
FONT_PATHS = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationMono-Regular.ttf",
    "/usr/share/fonts/truetype/freefont/FreeMono.ttf",
    "/System/Library/Fonts/Menlo.ttc",
    "C:/Windows/Fonts/consola.ttf",
]

# Glyphs are drawn at this size, then scaled to the cell
RENDER_SIZE = 48
THRESHOLD = 128

_lock = threading.Lock()


@lru_cache(maxsize=8)
def _get_font(font_path: Optional[str]):
    paths = [font_path] if font_path else FONT_PATHS
    for path in paths:
        try:
            return ImageFont.truetype(path, RENDER_SIZE)
        except OSError:
            continue

    if font_path:
        logger.warning(f"Font {font_path} not found, using default font")
    else:
        logger.debug("No monospace font found, using default font")
    return ImageFont.load_default(size=RENDER_SIZE)


@lru_cache(maxsize=4096)
def _glyph(char: str, width: int, height: int, font_path: Optional[str]) -> Mask:
    font = _get_font(font_path)

    # Cell box at render size: one advance wide, full ascent to descent high
    cell_width = max(1, round(font.getlength("M")))
    _, _, _, cell_height = font.getbbox("Mjg|")
    img = Image.new('L', (cell_width, max(1, cell_height)), 0)
    ImageDraw.Draw(img).text((0, 0), char, font=font, fill=255)

    img = img.resize((width, height), Image.Resampling.BILINEAR)
    mask = np.asarray(img) >= THRESHOLD
    mask.setflags(write=False)
    return mask


def glyph_mask(
    char: str,
    width: int,
    height: int,
    bold: bool = False,
    font_path: Optional[str] = None,
) -> Mask:
    """Get the dots of one character cell.

    Args:
        char: Character to draw
        width: Cell width in dots
        height: Cell height in dots
        bold: Thicken strokes by one dot
        font_path: TrueType font to use instead of the built-in list

    Returns:
        Read-only boolean array of shape (height, width)
    """
    if char.isspace():
        return np.zeros((height, width), dtype=bool)

    with _lock:
        mask = _glyph(char, width, height, font_path)

    if bold:
        mask = mask.copy()
        mask[:, 1:] |= mask[:, :-1]
    return mask
