"""
Abstract base class for receipt renderers.

A renderer turns a laid out Document into one artifact. Renderers keep
no per-document state, so one instance can serve several threads.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

from receipt_emulator.errors import RenderError
from receipt_emulator.printing.document import Document
from receipt_emulator.protocol.commands import Alignment

T = TypeVar("T")


class Renderer(ABC, Generic[T]):
    """Abstract base class for document renderers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short backend name used in logs and file extensions."""
        ...

    @abstractmethod
    def render(self, document: Document) -> T:
        """
        Render one document.

        Args:
            document: Laid out job

        Returns:
            The rendered artifact

        Raises:
            RenderError: If the document cannot be rendered
        """
        ...


@dataclass
class RenderOutput(Generic[T]):
    """Result of rendering a batch.

    ``output`` holds the artifacts of the jobs that succeeded and
    ``errors`` the fatal errors of the jobs that failed, both in stream
    order. ``warnings`` collects the non-fatal diagnostics of every job.
    """

    output: List[T] = field(default_factory=list)
    errors: List[RenderError] = field(default_factory=list)
    warnings: List[RenderError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def __len__(self) -> int:
        return len(self.output) + len(self.errors)


def x_offset(alignment: Alignment, width: int, page_width: int) -> int:
    """Left edge of a block of ``width`` dots on the page."""
    if alignment is Alignment.CENTER:
        return max(0, (page_width - width) // 2)
    if alignment is Alignment.RIGHT:
        return max(0, page_width - width)
    return 0
