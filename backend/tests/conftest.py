import os

# Set default env vars for tests before any app imports
os.environ.setdefault("MAX_CONCURRENT_REQUESTS", "2")
os.environ.setdefault("UPLOAD_CLEANUP_DELAY_SECONDS", "0")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest  # noqa: E402

from app.services.pipeline import ProcessResult  # noqa: E402
from app.services.queue_manager import QueueEvent, QueueManager  # noqa: E402


class EventRecorder:
    def __init__(self, tracker: QueueManager):
        self.events: list[tuple] = []
        for event in QueueEvent:
            tracker.on(event, lambda *args, event=event: self.events.append((event, *args)))

    def of(self, event: QueueEvent) -> list[tuple]:
        return [e[1:] for e in self.events if e[0] == event]


class FakeProcessor:
    """Writes ``enhanced_<name>`` next to the source; fails paths containing 'bad'."""

    def __init__(self, raise_on: str | None = None):
        self.raise_on = raise_on
        self.seen: list[str] = []

    def process_image(self, image_path: str) -> ProcessResult:
        self.seen.append(image_path)
        name = os.path.basename(image_path)
        if self.raise_on and self.raise_on in name:
            raise RuntimeError("provider exploded")
        if "bad" in name:
            return ProcessResult(success=False, error="API error: 400")
        output = os.path.join(os.path.dirname(image_path), f"enhanced_{name}")
        with open(output, "wb") as fh:
            fh.write(b"enhanced")
        return ProcessResult(success=True, output_path=output, analysis="Image edited")


@pytest.fixture
def tracker() -> QueueManager:
    return QueueManager(max_concurrent=2)


@pytest.fixture
def recorder(tracker) -> EventRecorder:
    return EventRecorder(tracker)


@pytest.fixture
def uploads(tmp_path):
    def _make(*names: str) -> list[str]:
        paths = []
        for name in names:
            path = tmp_path / name
            path.write_bytes(b"raw")
            paths.append(str(path))
        return paths

    return _make


@pytest.fixture
def check_progress(tracker):
    def _check(job_id: str) -> None:
        p = tracker.get_job(job_id).progress
        assert p.completed + p.failed + p.pending == p.total

    return _check


@pytest.fixture
def make_processor():
    return FakeProcessor
