"""Splitting a command stream into print jobs (receipts)."""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from receipt_emulator.protocol.commands import Command, Cut

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Job:
    """The commands of one receipt, in stream order."""

    index: int
    commands: Tuple[Command, ...]

    @property
    def offset(self) -> Optional[int]:
        """Byte offset of the first command of the job."""
        return self.commands[0].offset if self.commands else None

    @property
    def is_cut(self) -> bool:
        """True if the job was closed by a cut rather than by the end of the stream."""
        return bool(self.commands) and isinstance(self.commands[-1], Cut)

    def __len__(self) -> int:
        return len(self.commands)


class JobSegmenter:
    """Groups commands into jobs, closing a job after every cut.

    The cut belongs to the job it closes. Commands after the last cut
    form a final job; a stream without commands has no jobs.
    """

    def segment(self, commands: Iterable[Command]) -> List[Job]:
        jobs: List[Job] = []
        current: List[Command] = []

        for command in commands:
            current.append(command)
            if isinstance(command, Cut):
                jobs.append(Job(index=len(jobs), commands=tuple(current)))
                current = []

        if current:
            jobs.append(Job(index=len(jobs), commands=tuple(current)))

        logger.debug(f"Segmented stream into {len(jobs)} job(s)")
        return jobs


def segment(commands: Iterable[Command]) -> List[Job]:
    """Segment commands with a default segmenter."""
    return JobSegmenter().segment(commands)
