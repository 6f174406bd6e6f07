import numpy as np
import pytest
from PIL import Image

from receipt_emulator.printing.document import Document, FontProfile
from receipt_emulator.protocol import Alignment, Symbology
from receipt_emulator.render import HtmlRenderer, ImageRenderer, ReceiptImage
from receipt_emulator.render.base import x_offset
from receipt_emulator.render.fonts import glyph_mask


@pytest.fixture
def html_renderer() -> HtmlRenderer:
    return HtmlRenderer()


@pytest.fixture
def image_renderer() -> ImageRenderer:
    return ImageRenderer()


def _empty_document() -> Document:
    return Document(job_index=0, page_width=576, profile=FontProfile())


class TestHtmlRenderer:

    def test_standalone_document(self, html_renderer, layout):
        (document,) = layout(b"HELLO\n")
        receipt = html_renderer.render(document)
        assert receipt.job_index == 0
        assert receipt.content.startswith("<!DOCTYPE html>")
        assert "HELLO" in receipt.content
        assert receipt.content.rstrip().endswith("</html>")

    def test_text_is_escaped(self, html_renderer, layout):
        (document,) = layout(b"<b>Fish & Chips</b>\n")
        content = html_renderer.render(document).content
        assert "&lt;b&gt;Fish &amp; Chips&lt;/b&gt;" in content
        assert "<b>" not in content

    def test_styles_become_classes(self, html_renderer, layout):
        (document,) = layout(b"\x1ba\x01\x1bE\x01\x1b-\x02\x1dB\x01X\n")
        content = html_renderer.render(document).content
        assert 'class="line align-center"' in content
        assert 'class="bold underline-2 invert"' in content

    def test_feeds_keep_their_height(self, html_renderer, layout):
        (document,) = layout(b"\x1bJ\x11")
        assert 'class="feed" style="height:17px"' in html_renderer.render(document).content

    def test_images_are_embedded(self, html_renderer, layout, writer, checkerboard):
        (document,) = layout(writer.store_graphics(checkerboard, 16, 2).print_graphics().build())
        content = html_renderer.render(document).content
        assert 'src="data:image/png;base64,' in content
        assert 'width="16" height="2"' in content

    def test_barcode_hri_is_escaped(self, html_renderer, layout, writer):
        data = writer.raw(b"\x1dH\x02").barcode(Symbology.CODE128, "{B<&>").build()
        (document,) = layout(data)
        content = html_renderer.render(document).content
        assert '<div class="hri"' in content
        assert "&lt;&amp;&gt;" in content
        assert "<&>" not in content

    def test_empty_document(self, html_renderer):
        content = html_renderer.render(_empty_document()).content
        assert '<div class="receipt"' in content

    def test_save(self, html_renderer, layout, tmp_path):
        (document,) = layout(b"SAVED\n")
        path = tmp_path / "receipt.html"
        html_renderer.render(document).save(path)
        assert "SAVED" in path.read_text(encoding="utf-8")


class TestImageRenderer:

    def test_canvas_size(self, image_renderer, layout):
        (document,) = layout(b"HELLO\nWORLD\n\x1bd\x02")
        image = image_renderer.render(document)
        assert (image.width, image.height, image.channels) == (576, 120, 3)
        assert len(image.data) == 576 * 120 * 3

    def test_text_prints_ink(self, image_renderer, layout):
        (document,) = layout(b"HELLO\n")
        pixels = image_renderer.render(document).to_array()
        assert pixels[:24, :60].min() == 0
        # Nothing right of the text
        assert pixels[:, 60:].min() == 255

    def test_underline_space(self, image_renderer, layout):
        (document,) = layout(b"\x1b-\x02 \n")
        pixels = image_renderer.render(document).to_array()[:, :, 0]
        assert (pixels[22:24, :12] == 0).all()
        assert (pixels[:22, :12] == 255).all()
        assert (pixels[24:, :] == 255).all()

    def test_inverted_space(self, image_renderer, layout):
        (document,) = layout(b"\x1dB\x01 \n")
        pixels = image_renderer.render(document).to_array()[:, :, 0]
        assert (pixels[:24, :12] == 0).all()
        assert (pixels[:24, 12:] == 255).all()

    def test_inverted_glyph_is_mostly_ink(self, image_renderer, layout):
        (document,) = layout(b"\x1dB\x01A\n")
        cell = image_renderer.render(document).to_array()[:24, :12, 0]
        assert (cell == 0).mean() > 0.5

    def test_mixed_heights_share_baseline(self, image_renderer, layout):
        (document,) = layout(b"\x1b-\x01 \x1d!\x01\x1b-\x01 \n")
        pixels = image_renderer.render(document).to_array()[:, :, 0]
        # Both underlines sit on the bottom row of the 48-dot line
        assert pixels[47, 0] == 0
        assert pixels[47, 12] == 0
        assert pixels[23, 0] == 255

    def test_image_pixels(self, image_renderer, layout, writer, checkerboard):
        (document,) = layout(writer.store_graphics(checkerboard, 16, 2).print_graphics().build())
        pixels = image_renderer.render(document).to_array()[:, :, 0]
        assert list(pixels[0, :4]) == [0, 255, 0, 255]
        assert list(pixels[1, :4]) == [255, 0, 255, 0]

    def test_centered_image(self, image_renderer, layout, writer, checkerboard):
        data = writer.align(Alignment.CENTER).store_graphics(checkerboard, 16, 2).print_graphics().build()
        (document,) = layout(data)
        pixels = image_renderer.render(document).to_array()[:, :, 0]
        assert pixels[0, 280] == 0
        assert pixels[0, :280].min() == 255

    def test_barcode_bars(self, image_renderer, layout):
        (document,) = layout(b"\x1dh\x20\x1dk\x04A\x00")
        block = document.blocks[0]
        pixels = image_renderer.render(document).to_array()[:, :, 0]
        # Code 39 starts with a bar
        assert block.modules[0][0] == "1"
        assert (pixels[:32, :3] == 0).all()
        assert pixels.shape == (32, 576)

    def test_blocks_stack_in_order(self, image_renderer, layout, writer, checkerboard):
        data = writer.line("A").store_graphics(checkerboard, 16, 2).print_graphics().build()
        (document,) = layout(data)
        pixels = image_renderer.render(document).to_array()[:, :, 0]
        assert pixels.shape[0] == 32
        assert list(pixels[30, :2]) == [0, 255]

    @pytest.mark.parametrize("channel_format, channels", [("grayscale", 1), ("rgb", 3), ("rgba", 4)])
    def test_channel_formats(self, layout, channel_format, channels):
        (document,) = layout(b"HI\n")
        image = ImageRenderer(channel_format=channel_format).render(document)
        assert image.channels == channels
        assert len(image.data) == image.width * image.height * channels
        if channels == 4:
            assert (image.to_array()[:, :, 3] == 255).all()

    def test_unknown_channel_format(self):
        with pytest.raises(ValueError):
            ImageRenderer(channel_format="cmyk")

    def test_rendering_is_deterministic(self, image_renderer, layout):
        (document,) = layout(b"\x1bE\x01Total\x1bE\x00 12.50\n\x1dk\x04AB\x00")
        assert image_renderer.render(document).data == image_renderer.render(document).data

    def test_empty_document(self, image_renderer):
        image = image_renderer.render(_empty_document())
        assert image.is_empty
        assert image.data == b""
        with pytest.raises(ValueError):
            image.to_pil()

    @pytest.mark.parametrize("suffix, format", [(".png", "PNG"), (".bmp", "BMP")])
    def test_save(self, layout, tmp_path, suffix, format):
        (document,) = layout(b"PREVIEW\n")
        image = ImageRenderer(channel_format="rgba").render(document)
        path = tmp_path / f"receipt{suffix}"
        image.save(path, format=format)
        with Image.open(path) as saved:
            assert saved.size == (576, 30)

    def test_to_pil(self, image_renderer, layout):
        (document,) = layout(b"X\n")
        img = image_renderer.render(document).to_pil()
        assert img.mode == "RGB"
        assert img.size == (576, 30)


class TestGlyphs:

    def test_space_is_blank(self):
        assert not glyph_mask(" ", 12, 24).any()

    def test_glyph_fills_cell(self):
        mask = glyph_mask("W", 12, 24)
        assert mask.shape == (24, 12)
        assert mask.any()

    def test_bold_adds_ink(self):
        regular = glyph_mask("l", 12, 24)
        bold = glyph_mask("l", 12, 24, bold=True)
        assert bold.sum() > regular.sum()
        assert (bold | regular == bold).all()

    def test_cached_glyphs_are_read_only(self):
        with pytest.raises(ValueError):
            glyph_mask("Q", 12, 24)[0, 0] = True


class TestReceiptImage:

    def test_array_shape(self):
        image = ReceiptImage(job_index=0, width=2, height=1, channels=1, data=b"\x00\xff")
        assert image.to_array().shape == (1, 2, 1)
        assert np.array_equal(image.to_array()[0, :, 0], [0, 255])

    @pytest.mark.parametrize("alignment, expected", [
        (Alignment.LEFT, 0),
        (Alignment.CENTER, 280),
        (Alignment.RIGHT, 560),
    ])
    def test_x_offset(self, alignment, expected):
        assert x_offset(alignment, 16, 576) == expected
