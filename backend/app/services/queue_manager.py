"""
In-memory registry of image processing jobs.

Tracks each job's images and progress counters, keeps a FIFO of jobs waiting
to start and the set of jobs currently processing, and notifies listeners when
jobs start, change and complete. Deciding *when* to start a job is left to the
caller (see ``app.workers.dispatcher``); ``can_start_new_job`` only reports
whether the concurrency policy would allow it.
"""

import copy
import enum
import logging
import threading
import time
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime

from app.models import ImageStatus, ImageTask, Job, JobProgress, JobStatus

logger = logging.getLogger(__name__)


class QueueEvent(str, enum.Enum):
    job_start = "jobStart"
    job_complete = "jobComplete"
    job_update = "jobUpdate"


Listener = Callable[..., None]


def generate_job_id() -> str:
    """Job ids look like ``job_1718000000000_3f9a1c``."""
    return f"job_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


def _progress_bucket(status: ImageStatus) -> str:
    if status == ImageStatus.completed:
        return "completed"
    if status == ImageStatus.failed:
        return "failed"
    return "pending"


class QueueManager:
    def __init__(self, max_concurrent: int = 3):
        self.max_concurrent = max_concurrent
        self._jobs: dict[str, Job] = {}
        self._active: set[str] = set()
        self._queue: list[str] = []
        self._listeners: dict[QueueEvent, list[Listener]] = {event: [] for event in QueueEvent}
        # Listeners may call back into the manager, hence re-entrant.
        self._lock = threading.RLock()

    # ---- events ----

    def on(self, event: QueueEvent | str, listener: Listener) -> None:
        with self._lock:
            self._listeners[QueueEvent(event)].append(listener)

    def off(self, event: QueueEvent | str, listener: Listener) -> None:
        with self._lock:
            listeners = self._listeners[QueueEvent(event)]
            if listener in listeners:
                listeners.remove(listener)

    def _emit(self, event: QueueEvent, *args) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(*args)
            except Exception:  # noqa: BLE001
                logger.exception("Listener %r failed handling %s", listener, event.value)

    # ---- job lifecycle ----

    def create_job(self, job_id: str, image_paths: Sequence[str]) -> Job:
        job = Job(
            job_id=job_id,
            images=[ImageTask(path=path) for path in image_paths],
            progress=JobProgress.for_images(len(image_paths)),
        )
        with self._lock:
            self._jobs[job_id] = job
            self._queue.append(job_id)
            logger.info("Created job %s with %d images", job_id, len(job.images))
            return copy.deepcopy(job)

    def get_job(self, job_id: str) -> Job | None:
        """Return a snapshot of the job, or None if it is not registered."""
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def list_jobs(self) -> list[Job]:
        with self._lock:
            return [copy.deepcopy(job) for job in self._jobs.values()]

    def start_job(self, job_id: str) -> None:
        """
        Mark a job as processing.

        Capacity is not checked here; callers consult ``can_start_new_job``
        first. Unknown ids are ignored.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                logger.warning("start_job: job %s not found", job_id)
                return

            job.status = JobStatus.processing
            self._active.add(job_id)
            if job_id in self._queue:
                self._queue.remove(job_id)

            logger.info("Started job %s (%d active)", job_id, len(self._active))
            self._emit(QueueEvent.job_start, job_id)

            # A job without images has nothing left to wait for.
            if not job.images:
                self._complete(job)

    def update_image_status(
        self,
        job_id: str,
        image_index: int,
        status: ImageStatus | str,
        *,
        output_path: str | None = None,
        error: str | None = None,
        analysis: str | None = None,
    ) -> None:
        """
        Record a status change for one image of a job.

        Only the fields passed are overwritten. Unknown jobs and out-of-range
        indices are logged and ignored. Raises ValueError for a status that is
        not an ImageStatus.
        """
        status = ImageStatus(status)
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                logger.warning("update_image_status: job %s not found", job_id)
                return
            if not 0 <= image_index < len(job.images):
                logger.warning(
                    "update_image_status: image index %s out of range for job %s (%d images)",
                    image_index,
                    job_id,
                    len(job.images),
                )
                return

            image = job.images[image_index]
            previous = image.status
            image.status = status
            if output_path is not None:
                image.output_path = output_path
            if error is not None:
                image.error = error
            if analysis is not None:
                image.analysis = analysis

            old_bucket = _progress_bucket(previous)
            new_bucket = _progress_bucket(status)
            if old_bucket != new_bucket:
                progress = job.progress
                setattr(progress, old_bucket, getattr(progress, old_bucket) - 1)
                setattr(progress, new_bucket, getattr(progress, new_bucket) + 1)

            logger.debug(
                "Job %s image %d: %s -> %s", job_id, image_index, previous.value, status.value
            )

            if job.status != JobStatus.completed and job.all_images_resolved():
                self._complete(job)

            self._emit(QueueEvent.job_update, job_id, copy.deepcopy(job))

    def _complete(self, job: Job) -> None:
        job.status = JobStatus.completed
        job.completed_at = datetime.now()
        self._active.discard(job.job_id)
        logger.info(
            "Job %s completed: %d succeeded, %d failed",
            job.job_id,
            job.progress.completed,
            job.progress.failed,
        )
        self._emit(QueueEvent.job_complete, job.job_id)

    def remove_job(self, job_id: str) -> None:
        with self._lock:
            removed = self._jobs.pop(job_id, None)
            self._active.discard(job_id)
            if job_id in self._queue:
                self._queue.remove(job_id)
            if removed:
                logger.info("Removed job %s", job_id)

    # ---- scheduling queries ----

    def can_start_new_job(self) -> bool:
        with self._lock:
            return len(self._active) < self.max_concurrent and len(self._queue) > 0

    def get_next_job(self) -> str | None:
        """Peek at the head of the pending queue without removing it."""
        with self._lock:
            return self._queue[0] if self._queue else None

    def queued_job_ids(self) -> list[str]:
        """Ids of jobs waiting to start, oldest first."""
        with self._lock:
            return list(self._queue)

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "total_jobs": len(self._jobs),
                "active_jobs": len(self._active),
                "queued_jobs": len(self._queue),
                "max_concurrent": self.max_concurrent,
            }
