"""
Runs queued jobs on a thread pool, never more at once than the tracker allows.

Jobs start in queue order: if the job at the head of the queue has not been
submitted yet, nothing behind it starts either.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as futures_wait

from app.core.config import settings
from app.services.pipeline import PipelineService, ProcessorFactory
from app.services.queue_manager import QueueManager

logger = logging.getLogger(__name__)


class JobDispatcher:
    """
    Tracker calls are made outside ``self._lock`` so tracker listeners may call
    back into the dispatcher.
    """

    def __init__(self, tracker: QueueManager, pipeline: PipelineService | None = None):
        self.tracker = tracker
        self.pipeline = pipeline or PipelineService(tracker)
        # job_id -> (registration number, factory)
        self._factories: dict[str, tuple[int, ProcessorFactory]] = {}
        self._futures: dict[str, Future] = {}
        self._registered = 0
        self._starting = 0
        self._lock = threading.Lock()
        self._closed = False
        self._pool = ThreadPoolExecutor(
            max_workers=max(1, tracker.max_concurrent),
            thread_name_prefix=settings.dispatcher_thread_prefix,
        )

    def submit(self, job_id: str, processor_factory: ProcessorFactory) -> bool:
        """Queue a created job for processing. Returns False for unknown jobs."""
        if self.tracker.get_job(job_id) is None:
            logger.warning("Cannot dispatch unknown job %s", job_id)
            return False
        with self._lock:
            if self._closed:
                raise RuntimeError("dispatcher is shut down")
            self._registered += 1
            self._factories[job_id] = (self._registered, processor_factory)
        self.pump()
        return True

    def _drop_stale_factories(self) -> None:
        """Forget factories of jobs that left the queue without being dispatched."""
        with self._lock:
            mark = self._registered
        queued = set(self.tracker.queued_job_ids())
        with self._lock:
            # Jobs never re-enter the queue, but one registered after the snapshot may not be in it yet.
            stale = [
                job_id
                for job_id, (number, _) in self._factories.items()
                if number <= mark and job_id not in queued
            ]
            for job_id in stale:
                del self._factories[job_id]
        for job_id in stale:
            logger.info("Job %s is no longer queued; dropping it from dispatch", job_id)

    def pump(self) -> list[str]:
        """Start as many queued jobs as capacity allows. Returns the ids started."""
        started: list[str] = []
        self._drop_stale_factories()
        while self.tracker.can_start_new_job():
            job_id = self.tracker.get_next_job()
            with self._lock:
                if self._closed:
                    break
                entry = self._factories.pop(job_id, None)
                if entry is None:
                    break
                self._starting += 1

            try:
                self.tracker.start_job(job_id)
                with self._lock:
                    if self._closed:
                        logger.warning("Dispatcher shut down before job %s could run", job_id)
                        break
                    future = self._pool.submit(self.pipeline.run, job_id, entry[1])
                    self._futures[job_id] = future
            finally:
                with self._lock:
                    self._starting -= 1

            # A job that already finished runs its callback inline.
            future.add_done_callback(lambda f, job_id=job_id: self._on_run_done(job_id, f))
            started.append(job_id)

        if started:
            logger.info("Dispatched jobs: %s", ", ".join(started))
        return started

    def _on_run_done(self, job_id: str, future: Future) -> None:
        with self._lock:
            self._futures.pop(job_id, None)
        exc = future.exception()
        if exc is not None:
            logger.error("Pipeline run for job %s crashed: %s", job_id, exc)
        # A slot has freed up.
        self.pump()

    def waiting_jobs(self) -> list[str]:
        self._drop_stale_factories()
        with self._lock:
            return list(self._factories)

    def join(self, timeout: float | None = None) -> bool:
        """Block until every submitted job has run. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            self._drop_stale_factories()
            with self._lock:
                running = list(self._futures.values())
                waiting = bool(self._factories) or self._starting > 0
            if not running and not waiting:
                return True
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            if running:
                futures_wait(running, timeout=remaining)
            else:
                time.sleep(0.01 if remaining is None else min(0.01, remaining))

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
            self._factories.clear()
        self._pool.shutdown(wait=wait)
