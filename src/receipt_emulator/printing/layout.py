"""Layout engine for thermal printer receipts.

Interprets the commands of one job against a fresh layout state
(cursor, text attributes, page width) and produces a Document of
blocks with resolved sizes. Text is wrapped at the page width on the
last fitting space, or hard broken inside a word that is too long.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np

from receipt_emulator.errors import RenderError, RenderErrorKind
from receipt_emulator.printing.document import (
    PAGE_WIDTH_80MM,
    BarcodeBlock,
    BarcodeSettings,
    Block,
    Document,
    FontProfile,
    ImageBlock,
    SpacerBlock,
    TextRun,
    TextSpan,
    TextStyle,
)
from receipt_emulator.printing.jobs import Job
from receipt_emulator.printing.symbols import (
    SymbolError,
    UnsupportedSymbology,
    encode_linear,
    encode_qr,
    readable_text,
)
from receipt_emulator.protocol.commands import (
    Alignment,
    Barcode,
    Command,
    Control,
    Cut,
    FeedLine,
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

logger = logging.getLogger(__name__)

TAB_STOP = 8

# (character, style, line may break here)
Cell = Tuple[str, TextStyle, bool]


class LineOverflow(ValueError):
    """A single character is wider than the line."""


def break_lines(widths: Sequence[int], spaces: Sequence[bool], max_width: int) -> List[Tuple[int, int]]:
    """Compute line breaks for a run of characters.

    Lines break after the last space that still fits; spaces at a break
    are dropped. A word longer than the line is broken where it overflows.
    Every returned line fits, so breaking a returned line again gives the
    same line back.

    Args:
        widths: Width of every character
        spaces: Whether each character is a breakable space
        max_width: Available line width

    Returns:
        (start, end) index pairs, one per line
    """
    lines: List[Tuple[int, int]] = []
    count = len(widths)
    start = 0

    while start < count:
        total = 0
        end = start
        last_space = -1
        while end < count and total + widths[end] <= max_width:
            if spaces[end]:
                last_space = end
            total += widths[end]
            end += 1

        if end == count:
            lines.append((start, count))
            break
        if end == start:
            raise LineOverflow(f"character of width {widths[start]} exceeds line width {max_width}")

        if spaces[end]:
            cut = end
        elif last_space > start:
            cut = last_space
        else:
            cut = end

        line_end = cut
        while line_end > start and spaces[line_end - 1]:
            line_end -= 1
        if line_end == start:
            # Only spaces fit before the break point
            cut = line_end = end

        lines.append((start, line_end))
        start = cut
        while start < count and spaces[start]:
            start += 1

    return lines


def wrap_text(text: str, max_chars: int) -> List[str]:
    """Wrap plain text to lines of at most ``max_chars`` characters."""
    if max_chars <= 0:
        raise LineOverflow(f"cannot wrap to {max_chars} characters")

    lines: List[str] = []
    for raw in text.split("\n"):
        if not raw:
            lines.append("")
            continue
        spaces = [char == " " for char in raw]
        for start, end in break_lines([1] * len(raw), spaces, max_chars):
            lines.append(raw[start:end])
    return lines


@dataclass
class LayoutState:
    """Mutable state of one job's interpretation.

    Created by DocumentBuilder.build for a single job and dropped when
    the job's Document is complete.
    """

    job_index: int
    page_width: int
    profile: FontProfile
    code_page: str
    style: TextStyle = field(default_factory=TextStyle)
    alignment: Alignment = Alignment.LEFT
    line_spacing: int = 0  # 0 = font profile default
    barcode: BarcodeSettings = field(default_factory=BarcodeSettings)
    pending: List[Cell] = field(default_factory=list)
    pending_offset: Optional[int] = None
    stored_image: Optional[Tuple[Image, bytes]] = None
    stored_qr: Optional[Barcode] = None
    blocks: List[Block] = field(default_factory=list)
    diagnostics: List[RenderError] = field(default_factory=list)

    @property
    def advance(self) -> int:
        """Paper feed for one line, in dots."""
        return self.line_spacing or self.profile.line_spacing

    def reset(self, code_page: str) -> None:
        """ESC @ - restore power-on settings. Pending text and stored data are kept."""
        self.style = TextStyle()
        self.alignment = Alignment.LEFT
        self.line_spacing = 0
        self.barcode = BarcodeSettings()
        self.code_page = code_page

    def error(self, kind: RenderErrorKind, message: str, command: Optional[Command] = None) -> RenderError:
        offset = command.offset if command is not None else None
        return RenderError(kind, message, job_index=self.job_index, offset=offset)

    def warn(self, kind: RenderErrorKind, message: str, command: Command) -> None:
        logger.debug(f"Job {self.job_index}: {message}")
        self.diagnostics.append(RenderError(
            kind,
            message,
            job_index=self.job_index,
            offset=command.offset,
            fatal=False,
        ))


class DocumentBuilder:
    """Turns the commands of one job into a Document.

    The builder itself holds configuration only; all layout state lives
    in a LayoutState created per call, so one builder can serve several
    threads at once.
    """

    def __init__(
        self,
        page_width: int = PAGE_WIDTH_80MM,
        profile: Optional[FontProfile] = None,
        code_page: str = "cp437",
    ):
        """Initialize the builder.

        Args:
            page_width: Printable width in dots
            profile: Font metrics; defaults to the standard 12x24 / 9x17 fonts
            code_page: Python codec used for text until ESC t selects another
        """
        self.page_width = page_width
        self.profile = profile or FontProfile()
        self.code_page = code_page

    @classmethod
    def from_settings(cls, settings) -> "DocumentBuilder":
        """Create a builder from RenderSettings."""
        font = settings.font
        profile = FontProfile(
            font_a=(font.font_a_width, font.font_a_height),
            font_b=(font.font_b_width, font.font_b_height),
            line_spacing=font.line_spacing,
            font_path=str(font.font_path) if font.font_path else None,
        )
        return cls(page_width=settings.page_width, profile=profile, code_page=settings.code_page)

    def build(self, job: Job) -> Document:
        """Lay out one job.

        Args:
            job: The job to interpret

        Returns:
            Document with the job's blocks and non-fatal diagnostics

        Raises:
            RenderError: If the job cannot be laid out
        """
        state = LayoutState(
            job_index=job.index,
            page_width=self.page_width,
            profile=self.profile,
            code_page=self.code_page,
        )

        for command in job.commands:
            self._apply(state, command)
        self._flush(state)

        return Document(
            job_index=job.index,
            page_width=self.page_width,
            profile=self.profile,
            blocks=tuple(state.blocks),
            diagnostics=tuple(state.diagnostics),
        )

    def _apply(self, state: LayoutState, command: Command) -> None:
        if isinstance(command, Text):
            self._append_text(state, command)
        elif isinstance(command, SetStyle):
            self._apply_style(state, command)
        elif isinstance(command, FeedLine):
            self._feed(state, command)
        elif isinstance(command, Cut):
            self._flush(state)
            if command.feed:
                self._add_space(state, command.feed)
        elif isinstance(command, Image):
            self._flush(state)
            self._image(state, command)
        elif isinstance(command, Barcode):
            self._flush(state)
            self._barcode(state, command)
        elif isinstance(command, PrintStored):
            self._flush(state)
            self._print_stored(state, command)
        elif isinstance(command, Unsupported):
            state.warn(RenderErrorKind.UNSUPPORTED_OPCODE, f"unsupported command {command.mnemonic}", command)
        elif isinstance(command, Unknown):
            if command.truncated:
                state.warn(
                    RenderErrorKind.TRUNCATED_STREAM,
                    f"stream ends inside command {command.mnemonic} ({len(command.raw)} bytes left)",
                    command,
                )
            else:
                state.warn(RenderErrorKind.UNSUPPORTED_OPCODE, f"unknown command {command.mnemonic}", command)
        elif not isinstance(command, Control):
            raise state.error(RenderErrorKind.INTERNAL, f"unhandled command {type(command).__name__}", command)

    # --- settings ---

    def _apply_style(self, state: LayoutState, command: SetStyle) -> None:
        if command.reset:
            state.reset(self.code_page)

        changes = {
            name: getattr(command, name)
            for name in ("bold", "underline", "invert", "font", "width_scale", "height_scale")
            if getattr(command, name) is not None
        }
        if changes:
            state.style = replace(state.style, **changes)

        barcode = {
            key: getattr(command, name)
            for name, key in (
                ("barcode_height", "height"),
                ("barcode_module", "module_width"),
                ("hri_position", "hri_position"),
                ("qr_module_size", "qr_module_size"),
                ("qr_error_correction", "qr_error_correction"),
            )
            if getattr(command, name) is not None
        }
        if barcode:
            state.barcode = replace(state.barcode, **barcode)

        if command.alignment is not None:
            state.alignment = command.alignment
        if command.line_spacing is not None:
            state.line_spacing = command.line_spacing
        if command.code_page is not None:
            state.code_page = command.code_page

    # --- text ---

    def _append_text(self, state: LayoutState, command: Text) -> None:
        if not state.pending:
            state.pending_offset = command.offset

        for char in command.data.decode(state.code_page, errors="replace"):
            if char == "\t":
                self._tab(state)
            else:
                state.pending.append((char, state.style, char == " "))

    def _tab(self, state: LayoutState) -> None:
        """Pad to the next tab stop of the line the cursor is on."""
        char_width = state.style.cell(state.profile)[0]
        stop = TAB_STOP * char_width
        column = self._line_column(state)
        target = min((column // stop + 1) * stop, state.page_width)

        # Tab padding is not a break opportunity
        for _ in range((target - column) // char_width):
            state.pending.append((" ", state.style, False))

    def _line_column(self, state: LayoutState) -> int:
        """Cursor position in dots on the wrapped line that takes the next character."""
        widths = [style.cell(state.profile)[0] for _, style, _ in state.pending]
        breaks = [breakable for _, _, breakable in state.pending]
        # Zero-width marker where the next character goes
        start, _ = self._break_lines(state, widths + [0], breaks + [False])[-1]
        return sum(widths[start:])

    def _break_lines(self, state: LayoutState, widths: List[int], breaks: List[bool]) -> List[Tuple[int, int]]:
        try:
            return break_lines(widths, breaks, state.page_width)
        except LineOverflow as e:
            raise RenderError(
                RenderErrorKind.LAYOUT_OVERFLOW,
                str(e),
                job_index=state.job_index,
                offset=state.pending_offset,
            ) from e

    def _flush(self, state: LayoutState) -> None:
        """Print the pending line, wrapped to the page width."""
        if not state.pending:
            return

        cells = state.pending
        widths = [style.cell(state.profile)[0] for _, style, _ in cells]
        ranges = self._break_lines(state, widths, [breakable for _, _, breakable in cells])

        for start, end in ranges:
            line = cells[start:end]
            glyph_height = max(style.cell(state.profile)[1] for _, style, _ in line)
            state.blocks.append(TextRun(
                spans=self._spans(line),
                alignment=state.alignment,
                width=sum(widths[start:end]),
                height=max(state.advance, glyph_height),
                glyph_height=glyph_height,
            ))

        state.pending = []
        state.pending_offset = None

    def _spans(self, cells: Sequence[Cell]) -> Tuple[TextSpan, ...]:
        spans: List[TextSpan] = []
        for char, style, _ in cells:
            if spans and spans[-1].style == style:
                spans[-1] = TextSpan(spans[-1].text + char, style)
            else:
                spans.append(TextSpan(char, style))
        return tuple(spans)

    # --- paper feed ---

    def _feed(self, state: LayoutState, command: FeedLine) -> None:
        if command.dots:
            self._flush(state)
            self._add_space(state, command.count)
            return

        remaining = command.count
        if state.pending:
            self._flush(state)
            remaining -= 1
        if remaining > 0:
            self._add_space(state, remaining * state.advance)

    def _add_space(self, state: LayoutState, dots: int) -> None:
        if dots > 0:
            state.blocks.append(SpacerBlock(height=dots))

    # --- images ---

    def _image(self, state: LayoutState, command: Image) -> None:
        bitmap = self._normalize_image(state, command)
        if command.stored:
            state.stored_image = (command, bitmap)
            return
        self._emit_image(state, command, bitmap)

    def _normalize_image(self, state: LayoutState, command: Image) -> bytes:
        """Validate an image payload and convert it to packed raster rows."""
        if command.width <= 0 or command.height <= 0:
            raise state.error(
                RenderErrorKind.MALFORMED_PAYLOAD,
                f"image declares no pixels ({command.width}x{command.height})",
                command,
            )
        if len(command.data) != command.expected_size:
            raise state.error(
                RenderErrorKind.MALFORMED_PAYLOAD,
                f"{command.width}x{command.height} image needs {command.expected_size} bytes, "
                f"got {len(command.data)}",
                command,
            )

        if command.format is ImageFormat.RASTER:
            return command.data

        # Column formats: each column is a vertical strip of bytes, MSB on top
        rows = command.height // 8
        columns = np.frombuffer(command.data, dtype=np.uint8).reshape(command.width, rows)
        pixels = np.unpackbits(columns, axis=1).T
        return np.packbits(pixels, axis=1).tobytes()

    def _emit_image(self, state: LayoutState, command: Image, bitmap: bytes) -> None:
        width = command.width * command.scale_x
        height = command.height * command.scale_y
        if width > state.page_width:
            height = max(1, height * state.page_width // width)
            width = state.page_width

        state.blocks.append(ImageBlock(
            source_width=command.width,
            source_height=command.height,
            bitmap=bitmap,
            width=width,
            height=height,
            alignment=state.alignment,
        ))

    # --- barcodes ---

    def _barcode(self, state: LayoutState, command: Barcode) -> None:
        if command.truncated:
            raise state.error(
                RenderErrorKind.MALFORMED_PAYLOAD,
                f"{command.symbology.value} payload cut off after {len(command.payload)} bytes",
                command,
            )

        if command.symbology is Symbology.QR:
            if command.stored:
                state.stored_qr = command
            else:
                self._emit_qr(state, command)
            return

        try:
            text = command.payload.decode("ascii")
        except UnicodeDecodeError as e:
            raise state.error(
                RenderErrorKind.MALFORMED_PAYLOAD,
                f"{command.symbology.value} payload is not ASCII",
                command,
            ) from e

        try:
            row = encode_linear(command.symbology, text)
        except UnsupportedSymbology as e:
            state.warn(RenderErrorKind.UNSUPPORTED_OPCODE, str(e), command)
            return
        except SymbolError as e:
            raise state.error(RenderErrorKind.MALFORMED_PAYLOAD, str(e), command) from e

        settings = state.barcode
        self._emit_symbol(state, command, BarcodeBlock(
            symbology=command.symbology,
            text=readable_text(command.symbology, text),
            modules=(row,),
            module_width=settings.module_width,
            module_height=settings.height,
            hri_position=settings.hri_position,
            hri_height=state.profile.font_a[1],
            alignment=state.alignment,
        ))

    def _emit_qr(self, state: LayoutState, command: Barcode) -> None:
        settings = state.barcode
        try:
            modules = encode_qr(command.payload, settings.qr_error_correction)
        except SymbolError as e:
            raise state.error(RenderErrorKind.MALFORMED_PAYLOAD, str(e), command) from e

        self._emit_symbol(state, command, BarcodeBlock(
            symbology=Symbology.QR,
            text=command.payload.decode("latin-1"),
            modules=modules,
            module_width=settings.qr_module_size,
            module_height=settings.qr_module_size,
            alignment=state.alignment,
        ))

    def _emit_symbol(self, state: LayoutState, command: Barcode, block: BarcodeBlock) -> None:
        if block.width > state.page_width:
            raise state.error(
                RenderErrorKind.LAYOUT_OVERFLOW,
                f"{block.symbology.value} symbol is {block.width} dots wide, page is {state.page_width}",
                command,
            )
        state.blocks.append(block)

    def _print_stored(self, state: LayoutState, command: PrintStored) -> None:
        if command.target is StoredTarget.GRAPHICS:
            if state.stored_image is None:
                state.warn(RenderErrorKind.UNSUPPORTED_OPCODE, "print of empty graphics buffer", command)
                return
            image, bitmap = state.stored_image
            self._emit_image(state, image, bitmap)
        else:
            if state.stored_qr is None:
                state.warn(RenderErrorKind.UNSUPPORTED_OPCODE, "print of empty QR buffer", command)
                return
            self._emit_qr(state, state.stored_qr)
