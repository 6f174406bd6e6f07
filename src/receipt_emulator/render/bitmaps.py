"""Pixel masks shared by the renderers.

Masks are 2D boolean numpy arrays where True marks a black dot.
"""

from io import BytesIO

import numpy as np
from numpy.typing import NDArray
from PIL import Image

from receipt_emulator.printing.document import BarcodeBlock, ImageBlock

Mask = NDArray[np.bool_]


def image_mask(block: ImageBlock) -> Mask:
    """Unpack an image block and scale it to its printed size."""
    rows = np.frombuffer(block.bitmap, dtype=np.uint8).reshape(block.source_height, block.stride)
    pixels = np.unpackbits(rows, axis=1)[:, :block.source_width].astype(bool)

    if (block.width, block.height) == (block.source_width, block.source_height):
        return pixels

    # Nearest neighbour
    ys = np.arange(block.height) * block.source_height // block.height
    xs = np.arange(block.width) * block.source_width // block.width
    return pixels[np.ix_(ys, xs)]


def symbol_mask(block: BarcodeBlock) -> Mask:
    """Expand barcode modules to dots, without HRI text."""
    if not block.modules:
        return np.zeros((0, 0), dtype=bool)
    modules = np.array([[module == "1" for module in row] for row in block.modules], dtype=bool)
    return np.repeat(np.repeat(modules, block.module_height, axis=0), block.module_width, axis=1)


def mask_to_image(mask: Mask) -> Image.Image:
    """Grayscale image of a mask, black on white."""
    return Image.fromarray(np.where(mask, 0, 255).astype(np.uint8))


def mask_to_png(mask: Mask) -> bytes:
    """Encode a mask as PNG bytes."""
    buffer = BytesIO()
    mask_to_image(mask).save(buffer, format='PNG')
    return buffer.getvalue()
