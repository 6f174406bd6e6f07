"""Renderers - Document to HTML or pixels."""

from .base import Renderer, RenderOutput
from .html import HtmlRenderer, ReceiptHtml
from .image import ImageRenderer, ReceiptImage

__all__ = [
    # Base classes
    "Renderer",
    "RenderOutput",
    # Backends
    "HtmlRenderer",
    "ReceiptHtml",
    "ImageRenderer",
    "ReceiptImage",
]
