"""Image helpers: bitmap conversion and GS ( L encoding."""

import logging
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from receipt_emulator.printing.writer import EscPosWriter
from receipt_emulator.utils.hex import to_hex

logger = logging.getLogger(__name__)

# Red channel values below this print black
BLACK_THRESHOLD = 127


def image_to_bitmap(img: Image.Image) -> bytes:
    """Convert an image to packed raster rows (MSB first, 1 = black).

    Transparent areas count as paper. Rows are padded to whole bytes.
    """
    if img.mode in ("RGBA", "LA", "P"):
        img = img.convert("RGBA")
        background = Image.new("RGBA", img.size, (255, 255, 255, 255))
        img = Image.alpha_composite(background, img)

    # Hard split into black/white on the red channel
    red = np.asarray(img.convert("RGB"))[:, :, 0]
    return np.packbits(red < BLACK_THRESHOLD, axis=1).tobytes()


def encode_raster_image(img: Image.Image, scale_x: int = 1, scale_y: int = 1) -> bytes:
    """ESC/POS commands that store an image in the graphics buffer and print it."""
    width, height = img.size
    return (
        EscPosWriter()
        .store_graphics(image_to_bitmap(img), width, height, scale_x, scale_y)
        .print_graphics()
        .build()
    )


def encode_image_file(path: Union[str, Path], scale_x: int = 1, scale_y: int = 1) -> str:
    """Hex dump of the GS ( L commands for an image file, one command per line.

    Lines are the store header, the bitmap and the print command, ready
    to paste into a hex dump.
    """
    with Image.open(path) as img:
        width, height = img.size
        logger.debug(f"Encoding {path} ({width}x{height}, {format_file_size(Path(path).stat().st_size)})")
        data = encode_raster_image(img, scale_x, scale_y)

    # GS ( L pL pH m fn a bx by c xL xH yL yH
    header_size = 15
    print_size = 7
    return "\n".join([
        to_hex(data[:header_size]),
        to_hex(data[header_size:-print_size]),
        to_hex(data[-print_size:]),
    ])


def format_file_size(size: int) -> str:
    """Human readable file size."""
    if size < 1e3:
        return f"{size} bytes"
    if size < 1e6:
        return f"{size / 1e3:.1f} KB"
    return f"{size / 1e6:.1f} MB"
