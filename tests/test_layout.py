import pytest

from receipt_emulator.config.settings import RenderSettings
from receipt_emulator.errors import RenderError, RenderErrorKind
from receipt_emulator.printing.document import (
    PAGE_WIDTH_58MM,
    BarcodeBlock,
    ImageBlock,
    SpacerBlock,
    TextRun,
)
from receipt_emulator.printing.jobs import Job
from receipt_emulator.printing.layout import DocumentBuilder, LineOverflow, break_lines, wrap_text
from receipt_emulator.protocol import Alignment, Cut, HriPosition, Symbology, Text


SAMPLE = (
    "Thank you for shopping with us today. Returns are accepted within "
    "thirty days with the original receipt. Supercalifragilisticexpialidocious "
    "items are excluded."
)


class TestWrapText:

    def test_breaks_on_last_fitting_space(self):
        assert wrap_text("hello world foo", 11) == ["hello world", "foo"]

    def test_hard_break_inside_long_word(self):
        assert wrap_text("abcdefghij", 4) == ["abcd", "efgh", "ij"]

    def test_spaces_at_break_are_dropped(self):
        assert wrap_text("aaa   bbb", 4) == ["aaa", "bbb"]

    def test_keeps_short_text(self):
        assert wrap_text("short", 48) == ["short"]

    def test_blank_lines_survive(self):
        assert wrap_text("a\n\nb", 10) == ["a", "", "b"]

    @pytest.mark.parametrize("width", [5, 12, 20, 33, 48])
    def test_rewrapping_is_idempotent(self, width):
        lines = wrap_text(SAMPLE, width)
        assert all(len(line) <= width for line in lines)
        assert wrap_text("\n".join(lines), width) == lines

    def test_zero_width(self):
        with pytest.raises(LineOverflow):
            wrap_text("a", 0)

    def test_break_lines_with_mixed_widths(self):
        # Two 24-dot characters and three 12-dot characters on a 48-dot line
        widths = [24, 24, 12, 12, 12]
        assert break_lines(widths, [False] * 5, 48) == [(0, 2), (2, 5)]


class TestText:

    def test_single_line(self, layout):
        (document,) = layout(b"HELLO\n")
        (run,) = document.blocks
        assert isinstance(run, TextRun)
        assert run.text == "HELLO"
        assert (run.width, run.height, run.glyph_height) == (60, 30, 24)

    def test_pending_text_flushed_at_end_of_job(self, layout):
        (document,) = layout(b"HELLO")
        assert document.text_lines() == ("HELLO",)

    def test_wraps_at_page_width(self, layout):
        (document,) = layout(b"x" * 60 + b"\n")
        assert document.text_lines() == ("x" * 48, "x" * 12)

    def test_wraps_on_words(self, layout):
        (document,) = layout(SAMPLE.encode() + b"\n")
        assert document.text_lines() == tuple(wrap_text(SAMPLE, 48))

    def test_double_width_halves_line_length(self, layout):
        (document,) = layout(b"\x1b!\x20" + b"W" * 30 + b"\n")
        assert document.text_lines() == ("W" * 24, "W" * 6)
        assert document.blocks[0].width == 576

    def test_double_height_grows_line(self, layout):
        (document,) = layout(b"\x1d!\x01TALL\n")
        assert document.blocks[0].height == 48
        assert document.blocks[0].glyph_height == 48

    def test_line_spacing(self, layout):
        (document,) = layout(b"\x1b3\x40A\n\x1b2B\n")
        assert [block.height for block in document.blocks] == [64, 30]

    def test_style_spans(self, layout):
        (document,) = layout(b"\x1bE\x01BOLD\x1bE\x00 plain\n")
        (run,) = document.blocks
        assert [(span.text, span.style.bold) for span in run.spans] == [("BOLD", True), (" plain", False)]

    def test_style_snapshot_is_not_retroactive(self, layout):
        (document,) = layout(b"A\n\x1bE\x01\x1b-\x01B\n")
        first, second = document.blocks
        assert first.spans[0].style.bold is False
        assert first.spans[0].style.underline == 0
        assert second.spans[0].style.bold is True
        assert second.spans[0].style.underline == 1

    def test_reset_keeps_pending_text(self, layout):
        (document,) = layout(b"\x1bE\x01A\x1b@B")
        (run,) = document.blocks
        assert [(span.text, span.style.bold) for span in run.spans] == [("A", True), ("B", False)]

    def test_alignment(self, layout):
        (document,) = layout(b"\x1ba\x01MID\n\x1ba\x02END\n")
        assert [block.alignment for block in document.blocks] == [Alignment.CENTER, Alignment.RIGHT]

    def test_tab_expands_to_next_stop(self, layout):
        (document,) = layout(b"A\tB\n")
        assert document.text_lines() == ("A" + " " * 7 + "B",)

    def test_tab_stops_follow_character_width(self, layout):
        (document,) = layout(b"\x1b!\x20A\tB\n")
        (run,) = document.blocks
        assert run.text == "A" + " " * 7 + "B"
        assert run.width == 9 * 24

    def test_tab_after_wrap_point_starts_the_new_line(self):
        builder = DocumentBuilder(page_width=120)
        job = Job(index=0, commands=(Text(data=b"AAAAAAAAAA \tC", offset=0),))
        document = builder.build(job)
        assert document.text_lines() == ("AAAAAAAAAA", " " * 8 + "C")

    def test_default_code_page(self, layout):
        (document,) = layout(b"\x9c5\n")
        assert document.text_lines() == ("£5",)

    def test_selected_code_page(self, layout):
        (document,) = layout(b"\x1bt\x10\x80\n")
        assert document.text_lines() == ("€",)

    def test_character_wider_than_page(self):
        builder = DocumentBuilder(page_width=10)
        job = Job(index=0, commands=(Text(data=b"A", offset=3),))
        with pytest.raises(RenderError) as info:
            builder.build(job)
        assert info.value.kind is RenderErrorKind.LAYOUT_OVERFLOW
        assert info.value.offset == 3

    def test_state_does_not_leak_between_jobs(self, layout):
        first, second = layout(b"\x1bE\x01\x1ba\x01A\x1dV\x00B")
        assert first.blocks[0].spans[0].style.bold is True
        assert second.blocks[0].spans[0].style.bold is False
        assert second.blocks[0].alignment is Alignment.LEFT


class TestFeedsAndCuts:

    def test_feed_without_pending_text(self, layout):
        (document,) = layout(b"\x1bd\x03")
        assert document.blocks == (SpacerBlock(height=90),)

    def test_feed_prints_pending_line_first(self, layout):
        (document,) = layout(b"A\x1bd\x03")
        run, spacer = document.blocks
        assert run.text == "A"
        assert spacer == SpacerBlock(height=60)

    def test_blank_lines(self, layout):
        (document,) = layout(b"A\n\n\nB\n")
        assert [type(block) for block in document.blocks] == [TextRun, SpacerBlock, SpacerBlock, TextRun]
        assert document.height == 4 * 30

    def test_feed_dots(self, layout):
        (document,) = layout(b"\x1bJ\x11")
        assert document.blocks == (SpacerBlock(height=17),)

    def test_cut_with_feed(self, layout):
        (document,) = layout(b"A\x1dVB\x05")
        assert document.blocks[-1] == SpacerBlock(height=5)

    def test_lone_cut_is_empty_document(self, builder):
        document = builder.build(Job(index=0, commands=(Cut(),)))
        assert len(document) == 0
        assert document.height == 0
        assert document.diagnostics == ()


class TestImages:

    def test_raster_image(self, layout, writer, checkerboard):
        data = writer.raw(b"\x1dv0\x00\x02\x00\x02\x00" + checkerboard).build()
        (document,) = layout(data)
        (block,) = document.blocks
        assert block == ImageBlock(
            source_width=16, source_height=2, bitmap=checkerboard, width=16, height=2,
        )

    def test_size_mismatch_is_malformed(self, layout):
        with pytest.raises(RenderError) as info:
            layout(b"AB\x1dv0\x00\x02\x00\x02\x00\xff")
        assert info.value.kind is RenderErrorKind.MALFORMED_PAYLOAD
        assert info.value.offset == 2

    def test_column_image_is_converted_to_rows(self, layout):
        (document,) = layout(b"\x1b*\x21\x02\x00\xff\x00\x00\x00\x00\x01")
        (block,) = document.blocks
        assert (block.width, block.height) == (2, 24)
        assert block.bitmap[:8] == b"\x80" * 8
        assert block.bitmap[8:23] == bytes(15)
        assert block.bitmap[23:] == b"\x40"

    def test_double_density_scaling(self, layout):
        (document,) = layout(b"\x1dv0\x03\x01\x00\x01\x00\x80")
        (block,) = document.blocks
        assert (block.width, block.height) == (16, 2)

    def test_wide_image_is_fitted_to_page(self, layout):
        data = b"\x1dv0\x00" + (150).to_bytes(2, "little") + (4).to_bytes(2, "little") + bytes(600)
        (document,) = layout(data)
        (block,) = document.blocks
        assert block.width == 576
        assert block.height == 1

    def test_stored_graphics_print_on_request(self, layout, writer, checkerboard):
        (stored_only,) = layout(writer.store_graphics(checkerboard, 16, 2).build())
        assert stored_only.blocks == ()

        (printed,) = layout(writer.print_graphics().build())
        assert isinstance(printed.blocks[0], ImageBlock)

    def test_stored_graphics_with_scale(self, layout, writer, checkerboard):
        (document,) = layout(writer.store_graphics(checkerboard, 16, 2, scale_x=2, scale_y=2).print_graphics().build())
        assert (document.blocks[0].width, document.blocks[0].height) == (32, 4)

    def test_print_empty_graphics_buffer_warns(self, layout, writer):
        (document,) = layout(writer.print_graphics().build())
        assert document.blocks == ()
        (warning,) = document.diagnostics
        assert warning.kind is RenderErrorKind.UNSUPPORTED_OPCODE
        assert warning.fatal is False


class TestBarcodes:

    def test_code39(self, layout):
        (document,) = layout(b"\x1dk\x04ABC\x00")
        (block,) = document.blocks
        assert isinstance(block, BarcodeBlock)
        assert block.symbology is Symbology.CODE39
        assert block.text == "ABC"
        assert set(block.modules[0]) == {"0", "1"}
        assert block.width == len(block.modules[0]) * 3
        assert block.height == 162

    def test_hri_adds_text_height(self, layout):
        (document,) = layout(b"\x1dh\x50\x1dH\x03\x1dk\x04ABC\x00")
        (block,) = document.blocks
        assert block.hri_position is HriPosition.BOTH
        assert block.height == 80 + 2 * 24

    def test_module_width(self, layout):
        (narrow,) = layout(b"\x1dw\x02\x1dk\x04AB\x00")
        (wide,) = layout(b"\x1dw\x04\x1dk\x04AB\x00")
        assert wide.blocks[0].width == 2 * narrow.blocks[0].width

    def test_invalid_payload_is_malformed(self, layout):
        with pytest.raises(RenderError) as info:
            layout(b"\x1dk\x02123\x00")
        assert info.value.kind is RenderErrorKind.MALFORMED_PAYLOAD

    @pytest.mark.parametrize("data", [
        b"\x1dk\x04ABC",
        b"\x1dkI\x05AB",
        b"\x1d(k\x10\x001P0hi",
    ])
    def test_payload_cut_off_by_end_of_stream(self, layout, data):
        with pytest.raises(RenderError) as info:
            layout(data)
        assert info.value.kind is RenderErrorKind.MALFORMED_PAYLOAD
        assert info.value.offset == 0

    def test_symbol_wider_than_page(self, layout, writer):
        with pytest.raises(RenderError) as info:
            layout(writer.barcode(Symbology.CODE128, "{B" + "A" * 40).build())
        assert info.value.kind is RenderErrorKind.LAYOUT_OVERFLOW

    def test_symbology_without_encoder_warns(self, layout):
        (document,) = layout(b"\x1dk\x0112345670\x00")
        assert document.blocks == ()
        assert document.diagnostics[0].kind is RenderErrorKind.UNSUPPORTED_OPCODE

    def test_qr(self, layout, writer):
        (document,) = layout(writer.qr("hello", module_size=4).build())
        (block,) = document.blocks
        assert block.symbology is Symbology.QR
        assert len(block.modules) == 21
        assert block.width == block.height == 21 * 4

    def test_qr_needs_print_command(self, layout):
        (document,) = layout(b"\x1d(k\x08\x001P0hello")
        assert document.blocks == ()


class TestDiagnostics:

    def test_unknown_only_job_is_empty_with_warning(self, layout):
        (document,) = layout(b"\x1b\x7f")
        assert document.blocks == ()
        (warning,) = document.diagnostics
        assert warning.kind is RenderErrorKind.UNSUPPORTED_OPCODE
        assert warning.fatal is False
        assert warning.offset == 0

    def test_unsupported_command_warns(self, layout):
        (document,) = layout(b"A\x1bL\n")
        assert document.text_lines() == ("A",)
        assert document.diagnostics[0].kind is RenderErrorKind.UNSUPPORTED_OPCODE

    def test_truncated_stream_warns(self, layout):
        (document,) = layout(b"A\n\x1d!")
        assert document.text_lines() == ("A",)
        assert document.diagnostics[0].kind is RenderErrorKind.TRUNCATED_STREAM

    def test_control_commands_are_silent(self, layout):
        (document,) = layout(b"A\r\n\x1bp\x00\x19\xfa\x10\x04\x01")
        assert document.diagnostics == ()

    def test_diagnostics_carry_job_index(self, layout):
        _, second = layout(b"A\x1dV\x00\x07")
        assert second.diagnostics[0].job_index == 1


class TestBuilderSettings:

    def test_from_settings(self):
        builder = DocumentBuilder.from_settings(RenderSettings.for_paper("58mm", _env_file=None))
        assert builder.page_width == PAGE_WIDTH_58MM
        assert builder.profile.font_a == (12, 24)

    def test_narrow_paper_wraps_earlier(self, decoder, segmenter):
        builder = DocumentBuilder(page_width=PAGE_WIDTH_58MM)
        (job,) = segmenter.segment(decoder.decode(b"x" * 40))
        assert builder.build(job).text_lines() == ("x" * 32, "x" * 8)

    def test_building_twice_gives_equal_documents(self, builder, decoder, segmenter):
        (job,) = segmenter.segment(decoder.decode(b"\x1bE\x01HELLO\n\x1dk\x04AB\x00\x07"))
        assert builder.build(job) == builder.build(job)
