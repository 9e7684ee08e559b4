import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from app.models import ImageStatus, JobStatus
from app.services.queue_manager import QueueManager

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    success: bool
    output_path: str | None = None
    analysis: str | None = None
    error: str | None = None


class ImageProcessor(Protocol):
    """Provider adapter: enhance one image and write the result to disk."""

    def process_image(self, image_path: str) -> ProcessResult: ...


ProcessorFactory = Callable[[], ImageProcessor]


class PipelineError(Exception):
    def __init__(self, code: str, detail: str):
        super().__init__(detail)
        self.code = code
        self.detail = detail


class PipelineService:
    def __init__(self, tracker: QueueManager):
        self.tracker = tracker

    def _build_processor(self, processor_factory: ProcessorFactory) -> ImageProcessor:
        try:
            return processor_factory()
        except Exception as exc:  # noqa: BLE001
            raise PipelineError("PROCESSOR_INIT_FAILED", str(exc)) from exc

    def _process_one(self, processor: ImageProcessor, job_id: str, index: int, path: str) -> None:
        self.tracker.update_image_status(job_id, index, ImageStatus.processing)
        try:
            result = processor.process_image(path)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Exception processing image %d of job %s", index, job_id)
            self.tracker.update_image_status(job_id, index, ImageStatus.failed, error=str(exc))
            return

        if result.success:
            logger.info("Image %d of job %s processed: %s", index, job_id, result.output_path)
            self.tracker.update_image_status(
                job_id,
                index,
                ImageStatus.completed,
                output_path=result.output_path,
                analysis=result.analysis,
            )
        else:
            logger.warning("Image %d of job %s failed: %s", index, job_id, result.error)
            self.tracker.update_image_status(
                job_id,
                index,
                ImageStatus.failed,
                error=result.error or "Failed to process image",
            )

    def run(self, job_id: str, processor_factory: ProcessorFactory) -> None:
        """
        Process every image of a job in order, reporting each result to the tracker.

        Starts the job if it is still pending. A processor that cannot be built
        fails every image of the job.
        """
        job = self.tracker.get_job(job_id)
        if not job:
            logger.error("Job %s not found", job_id)
            return

        if job.status == JobStatus.pending:
            self.tracker.start_job(job_id)
        logger.info("Processing job %s: %d images", job_id, len(job.images))

        try:
            processor = self._build_processor(processor_factory)
        except PipelineError as exc:
            logger.error("Job %s aborted (%s): %s", job_id, exc.code, exc.detail)
            for index in range(len(job.images)):
                self.tracker.update_image_status(
                    job_id, index, ImageStatus.failed, error=f"Server error: {exc.detail}"
                )
            return

        for index, image in enumerate(job.images):
            self._process_one(processor, job_id, index, image.path)

        logger.info("Finished processing job %s", job_id)
