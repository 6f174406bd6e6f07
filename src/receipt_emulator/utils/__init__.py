"""Utility modules for the receipt emulator."""

from .hex import hex_to_bytes, to_hex
from .image import (
    encode_image_file,
    encode_raster_image,
    format_file_size,
    image_to_bitmap,
)

__all__ = [
    "hex_to_bytes",
    "to_hex",
    "encode_image_file",
    "encode_raster_image",
    "format_file_size",
    "image_to_bitmap",
]
