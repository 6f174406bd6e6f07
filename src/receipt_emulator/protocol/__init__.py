"""ESC/POS protocol: command model and byte stream decoder."""

from receipt_emulator.protocol.commands import (
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
)
from receipt_emulator.protocol.decoder import CommandDecoder, decode

__all__ = [
    # Commands
    "Command",
    "Text",
    "SetStyle",
    "FeedLine",
    "Cut",
    "Image",
    "Barcode",
    "PrintStored",
    "Control",
    "Unsupported",
    "Unknown",
    # Enums
    "Alignment",
    "Font",
    "HriPosition",
    "ImageFormat",
    "StoredTarget",
    "Symbology",
    # Decoder
    "CommandDecoder",
    "decode",
]
