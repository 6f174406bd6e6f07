"""Printing module - job segmentation, layout and ESC/POS writing."""

from receipt_emulator.printing.document import (
    BarcodeBlock,
    Block,
    Document,
    FontProfile,
    ImageBlock,
    SpacerBlock,
    TextRun,
    TextSpan,
    TextStyle,
)
from receipt_emulator.printing.jobs import Job, JobSegmenter, segment
from receipt_emulator.printing.layout import DocumentBuilder, LayoutState, wrap_text
from receipt_emulator.printing.writer import EscPosWriter

__all__ = [
    # Jobs
    "Job",
    "JobSegmenter",
    "segment",
    # Layout
    "DocumentBuilder",
    "LayoutState",
    "wrap_text",
    # Document
    "Document",
    "Block",
    "TextRun",
    "TextSpan",
    "TextStyle",
    "SpacerBlock",
    "ImageBlock",
    "BarcodeBlock",
    "FontProfile",
    # Writer
    "EscPosWriter",
]
