"""Markup backend: renders a Document to a standalone HTML page."""

import base64
import html
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from receipt_emulator.errors import RenderError, RenderErrorKind
from receipt_emulator.printing.document import (
    BarcodeBlock,
    Document,
    FontProfile,
    ImageBlock,
    SpacerBlock,
    TextRun,
    TextSpan,
)
from receipt_emulator.protocol.commands import Font, HriPosition
from receipt_emulator.render.base import Renderer
from receipt_emulator.render.bitmaps import image_mask, mask_to_png, symbol_mask

logger = logging.getLogger(__name__)

STYLESHEET = """
body { margin: 0; padding: 16px; background: #e0e0e0; }
.receipt { margin: 0 auto; background: #fff; color: #000;
  font-family: "DejaVu Sans Mono", "Liberation Mono", Menlo, Consolas, monospace; }
.line { white-space: pre; overflow: hidden; display: flex; align-items: flex-end; }
.line span { display: inline-block; overflow: hidden; white-space: pre; }
.align-left { justify-content: flex-start; text-align: left; }
.align-center { justify-content: center; text-align: center; }
.align-right { justify-content: flex-end; text-align: right; }
.bold { font-weight: bold; }
.underline-1 { text-decoration: underline; text-decoration-thickness: 1px; }
.underline-2 { text-decoration: underline; text-decoration-thickness: 2px; }
.invert { background: #000; color: #fff; }
.font-b { font-stretch: condensed; }
.block img { display: block; image-rendering: pixelated; }
.block.align-center img { margin: 0 auto; }
.block.align-right img { margin-left: auto; }
.hri { white-space: pre; }
"""


@dataclass(frozen=True)
class ReceiptHtml:
    """HTML document of one receipt."""

    job_index: int
    content: str

    def save(self, path: Union[str, Path]) -> None:
        Path(path).write_text(self.content, encoding="utf-8")
        logger.debug(f"Saved receipt {self.job_index} to {path}")

    def __str__(self) -> str:
        return self.content


def _data_uri(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


class HtmlRenderer(Renderer[ReceiptHtml]):
    """Renders documents to HTML pages with embedded PNG images."""

    @property
    def name(self) -> str:
        return "html"

    def render(self, document: Document) -> ReceiptHtml:
        parts: List[str] = []
        for block in document.blocks:
            if isinstance(block, TextRun):
                parts.append(self._text_run(block, document.profile))
            elif isinstance(block, SpacerBlock):
                parts.append(f'<div class="feed" style="height:{block.height}px"></div>')
            elif isinstance(block, ImageBlock):
                parts.append(self._image(block))
            elif isinstance(block, BarcodeBlock):
                parts.append(self._barcode(block, document.profile))
            else:
                raise RenderError(
                    RenderErrorKind.INTERNAL,
                    f"cannot render block {type(block).__name__}",
                    job_index=document.job_index,
                )

        body = "\n".join(parts)
        content = f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Receipt {document.job_index + 1}</title>
<style>{STYLESHEET}</style>
</head>
<body>
<div class="receipt" style="width:{document.page_width}px;min-height:{document.height}px">
{body}
</div>
</body>
</html>
"""
        return ReceiptHtml(job_index=document.job_index, content=content)

    def _text_run(self, run: TextRun, profile: FontProfile) -> str:
        spans = "".join(self._span(span, profile) for span in run.spans)
        return (
            f'<div class="line align-{run.alignment.value}" style="height:{run.height}px">'
            f'<div style="height:{run.glyph_height}px;display:flex;align-items:flex-end">{spans}</div></div>'
        )

    def _span(self, span: TextSpan, profile: FontProfile) -> str:
        style = span.style
        width, height = style.cell(profile)

        classes = []
        if style.bold:
            classes.append("bold")
        if style.underline:
            classes.append(f"underline-{style.underline}")
        if style.invert:
            classes.append("invert")
        if style.font is Font.B:
            classes.append("font-b")

        # Cell size is fixed by the printer; the font is fitted into it
        css = (
            f"width:{width * len(span.text)}px;height:{height}px;"
            f"font-size:{height * 5 // 6}px;line-height:{height}px"
        )
        class_attr = f' class="{" ".join(classes)}"' if classes else ""
        return f'<span{class_attr} style="{css}">{html.escape(span.text)}</span>'

    def _image(self, block: ImageBlock) -> str:
        uri = _data_uri(mask_to_png(image_mask(block)))
        return (
            f'<div class="block image align-{block.alignment.value}" style="height:{block.height}px">'
            f'<img src="{uri}" width="{block.width}" height="{block.height}" alt=""></div>'
        )

    def _barcode(self, block: BarcodeBlock, profile: FontProfile) -> str:
        text = html.escape(block.text)
        hri_style = f'style="height:{block.hri_height}px;font-size:{profile.font_a[1] * 5 // 6}px"'
        uri = _data_uri(mask_to_png(symbol_mask(block)))

        parts = [f'<div class="block barcode align-{block.alignment.value}" style="height:{block.height}px">']
        if block.hri_position in (HriPosition.ABOVE, HriPosition.BOTH):
            parts.append(f'<div class="hri" {hri_style}>{text}</div>')
        parts.append(
            f'<img src="{uri}" width="{block.symbol_width}" height="{block.symbol_height}" '
            f'alt="{block.symbology.value}: {text}">'
        )
        if block.hri_position in (HriPosition.BELOW, HriPosition.BOTH):
            parts.append(f'<div class="hri" {hri_style}>{text}</div>')
        parts.append("</div>")
        return "".join(parts)
