"""Per-job render errors."""

from enum import Enum
from typing import Optional


class RenderErrorKind(Enum):
    """Categories of problems found while building or rendering a job."""

    MALFORMED_PAYLOAD = "MalformedPayload"
    UNSUPPORTED_OPCODE = "UnsupportedOpcode"
    LAYOUT_OVERFLOW = "LayoutOverflow"
    TRUNCATED_STREAM = "TruncatedStream"
    INTERNAL = "Internal"


class RenderError(Exception):
    """Error or warning attached to one job.

    Attributes:
        kind: Error category
        job_index: Ordinal of the job in the stream (0-based)
        offset: Byte offset of the offending command, if known
        message: Human readable description
        fatal: False for diagnostics that accompany a successful render
    """

    def __init__(
        self,
        kind: RenderErrorKind,
        message: str,
        job_index: int = 0,
        offset: Optional[int] = None,
        fatal: bool = True,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.job_index = job_index
        self.offset = offset
        self.fatal = fatal

    def for_job(self, job_index: int) -> "RenderError":
        """Return a copy bound to ``job_index``."""
        return RenderError(self.kind, self.message, job_index, self.offset, self.fatal)

    def describe(self) -> str:
        """Single line description for hosts that only take strings."""
        where = f" at byte {self.offset}" if self.offset is not None else ""
        level = "error" if self.fatal else "warning"
        return f"{self.kind.value} {level} in job {self.job_index}{where}: {self.message}"

    def __str__(self) -> str:
        return self.describe()

    def __repr__(self) -> str:
        return (
            f"RenderError(kind={self.kind.value}, job_index={self.job_index}, "
            f"offset={self.offset}, message={self.message!r}, fatal={self.fatal})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RenderError):
            return NotImplemented
        return (
            self.kind == other.kind
            and self.message == other.message
            and self.job_index == other.job_index
            and self.offset == other.offset
            and self.fatal == other.fatal
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.message, self.job_index, self.offset, self.fatal))
