"""Thermal receipt printer emulator.

Renders raw ESC/POS byte streams to HTML pages or pixel buffers, one
artifact per receipt.
"""

from receipt_emulator.config.settings import FontSettings, RenderSettings, get_settings
from receipt_emulator.errors import RenderError, RenderErrorKind
from receipt_emulator.pipeline import BatchPipeline, render_to_html, render_to_image
from receipt_emulator.printing import Document, DocumentBuilder, EscPosWriter, Job, JobSegmenter
from receipt_emulator.protocol import CommandDecoder, decode
from receipt_emulator.render import (
    HtmlRenderer,
    ImageRenderer,
    ReceiptHtml,
    ReceiptImage,
    Renderer,
    RenderOutput,
)

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "render_to_html",
    "render_to_image",
    "BatchPipeline",
    # Stages
    "CommandDecoder",
    "decode",
    "JobSegmenter",
    "Job",
    "DocumentBuilder",
    "Document",
    "Renderer",
    "HtmlRenderer",
    "ImageRenderer",
    # Results
    "RenderOutput",
    "ReceiptHtml",
    "ReceiptImage",
    "RenderError",
    "RenderErrorKind",
    # Config
    "RenderSettings",
    "FontSettings",
    "get_settings",
    # Writer
    "EscPosWriter",
]
