import logging
import threading
from pathlib import Path

from app.core.config import settings
from app.services.queue_manager import QueueEvent, QueueManager

logger = logging.getLogger(__name__)


def _remove_file(path: str) -> bool:
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        logger.debug("File already gone: %s", path)
    except OSError as e:
        logger.warning("Failed to delete %s: %s", path, e)
    return False


class UploadCleanup:
    """
    Deletes a job's uploaded source images some time after the job completes.

    Outputs are left alone so they can still be downloaded; use ``discard_job``
    to drop those together with the job record.
    """

    def __init__(self, tracker: QueueManager, delay_seconds: float | None = None):
        self.tracker = tracker
        self.delay_seconds = (
            settings.upload_cleanup_delay_seconds if delay_seconds is None else delay_seconds
        )
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def attach(self) -> None:
        self.tracker.on(QueueEvent.job_complete, self._on_job_complete)

    def detach(self) -> None:
        self.tracker.off(QueueEvent.job_complete, self._on_job_complete)

    def _on_job_complete(self, job_id: str) -> None:
        timer = threading.Timer(self.delay_seconds, self.delete_sources, args=(job_id,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(job_id, None)
            if previous:
                previous.cancel()
            self._timers[job_id] = timer
            timer.start()
        logger.debug("Scheduled upload cleanup for job %s in %ss", job_id, self.delay_seconds)

    def delete_sources(self, job_id: str) -> int:
        """Delete the source files of a job. Returns how many were removed."""
        try:
            job = self.tracker.get_job(job_id)
            if not job:
                return 0

            removed = sum(1 for image in job.images if _remove_file(image.path))
            if removed:
                logger.info("Cleanup: removed %d uploads of job %s", removed, job_id)
            return removed
        finally:
            with self._lock:
                if self._timers.get(job_id) is threading.current_thread():
                    del self._timers[job_id]

    def pending(self) -> list[str]:
        with self._lock:
            return list(self._timers)

    def join(self, timeout: float | None = None) -> None:
        with self._lock:
            timers = list(self._timers.values())
        for timer in timers:
            timer.join(timeout)

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()


def discard_job(tracker: QueueManager, job_id: str) -> bool:
    """Delete a job's output files and forget the job. False if it is unknown."""
    job = tracker.get_job(job_id)
    if not job:
        return False

    for image in job.images:
        if image.output_path:
            _remove_file(image.output_path)

    tracker.remove_job(job_id)
    return True
