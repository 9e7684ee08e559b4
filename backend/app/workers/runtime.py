import logging
from dataclasses import dataclass

from app.core.config import Settings, settings as default_settings
from app.services.cleanup import UploadCleanup
from app.services.pipeline import ProcessorFactory
from app.services.queue_manager import QueueManager, generate_job_id
from app.workers.dispatcher import JobDispatcher

logger = logging.getLogger(__name__)


@dataclass
class JobRuntime:
    """Tracker, dispatcher and upload cleanup for one server process."""

    tracker: QueueManager
    dispatcher: JobDispatcher
    cleanup: UploadCleanup

    def enqueue(self, image_paths: list[str], processor_factory: ProcessorFactory) -> str:
        """Register a job for the uploaded images and hand it to the dispatcher."""
        job_id = generate_job_id()
        self.tracker.create_job(job_id, image_paths)
        self.dispatcher.submit(job_id, processor_factory)
        return job_id

    def close(self, wait: bool = True) -> None:
        self.dispatcher.shutdown(wait=wait)
        self.cleanup.cancel_all()
        self.cleanup.detach()


def create_runtime(config: Settings | None = None) -> JobRuntime:
    config = config or default_settings
    tracker = QueueManager(max_concurrent=config.max_concurrent_requests)
    cleanup = UploadCleanup(tracker, delay_seconds=config.upload_cleanup_delay_seconds)
    cleanup.attach()
    dispatcher = JobDispatcher(tracker)
    logger.info("Job runtime ready (max concurrent jobs: %d)", config.max_concurrent_requests)
    return JobRuntime(tracker=tracker, dispatcher=dispatcher, cleanup=cleanup)
