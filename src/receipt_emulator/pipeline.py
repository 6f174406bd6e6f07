"""Batch pipeline: byte stream in, one artifact per receipt out.

Decodes the stream, splits it into jobs at every cut, then builds and
renders each job independently. A job that fails is reported in the
error list and never stops the rest of the batch.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Generic, List, Optional, Tuple, TypeVar

from receipt_emulator.config.settings import RenderSettings, get_settings
from receipt_emulator.errors import RenderError, RenderErrorKind
from receipt_emulator.printing.jobs import Job, JobSegmenter
from receipt_emulator.printing.layout import DocumentBuilder
from receipt_emulator.protocol.decoder import CommandDecoder
from receipt_emulator.render.base import Renderer, RenderOutput
from receipt_emulator.render.html import HtmlRenderer, ReceiptHtml
from receipt_emulator.render.image import ImageRenderer, ReceiptImage

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (artifact, fatal error, warnings) of one job
JobResult = Tuple[Optional[T], Optional[RenderError], Tuple[RenderError, ...]]


class BatchPipeline(Generic[T]):
    """Renders every receipt of an ESC/POS stream.

    Jobs render one after another unless ``workers`` is above one, in
    which case they run on a thread pool. Output order is stream order
    either way.
    """

    def __init__(
        self,
        renderer: Renderer[T],
        settings: Optional[RenderSettings] = None,
        decoder: Optional[CommandDecoder] = None,
        segmenter: Optional[JobSegmenter] = None,
        builder: Optional[DocumentBuilder] = None,
        workers: Optional[int] = None,
    ):
        self.settings = settings or get_settings()
        self.renderer = renderer
        self.decoder = decoder or CommandDecoder()
        self.segmenter = segmenter or JobSegmenter()
        self.builder = builder or DocumentBuilder.from_settings(self.settings)
        self.workers = workers if workers is not None else self.settings.workers
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")

    def process(self, data: bytes) -> RenderOutput[T]:
        """Render all receipts in ``data``.

        Args:
            data: Raw printer byte stream

        Returns:
            Artifacts of the successful jobs, errors of the failed ones
            and the warnings of all jobs, each in stream order

        Raises:
            TypeError: If data is not bytes-like
        """
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"expected bytes, got {type(data).__name__}")

        jobs = self.segmenter.segment(self.decoder.decode(bytes(data)))
        logger.info(f"Rendering {len(jobs)} job(s) with {self.renderer.name} renderer")

        if self.workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                results: List[JobResult] = list(executor.map(self._run_job, jobs))
        else:
            results = [self._run_job(job) for job in jobs]

        output: RenderOutput[T] = RenderOutput()
        for artifact, error, warnings in results:
            output.warnings.extend(warnings)
            if error is not None:
                output.errors.append(error)
            else:
                output.output.append(artifact)

        if output.errors:
            logger.warning(f"{len(output.errors)} of {len(jobs)} job(s) failed")
        return output

    def _run_job(self, job: Job) -> JobResult:
        """Build and render one job, capturing any failure."""
        try:
            document = self.builder.build(job)
            artifact = self.renderer.render(document)
        except RenderError as e:
            error = e if e.job_index == job.index else e.for_job(job.index)
            logger.warning(f"Job {job.index} failed: {error.describe()}")
            return None, error, ()
        except Exception as e:
            logger.exception(f"Job {job.index} crashed: {e}")
            error = RenderError(
                RenderErrorKind.INTERNAL,
                f"{type(e).__name__}: {e}",
                job_index=job.index,
                offset=job.offset,
            )
            return None, error, ()

        return artifact, None, document.diagnostics


def render_to_html(data: bytes, settings: Optional[RenderSettings] = None) -> RenderOutput[ReceiptHtml]:
    """Render every receipt in ``data`` to an HTML page."""
    return BatchPipeline(HtmlRenderer(), settings=settings).process(data)


def render_to_image(data: bytes, settings: Optional[RenderSettings] = None) -> RenderOutput[ReceiptImage]:
    """Render every receipt in ``data`` to a pixel buffer."""
    settings = settings or get_settings()
    return BatchPipeline(ImageRenderer.from_settings(settings), settings=settings).process(data)
