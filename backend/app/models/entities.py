import enum
from dataclasses import dataclass, field
from datetime import datetime


class JobStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"


class ImageStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ImageStatus.completed, ImageStatus.failed)


@dataclass
class ImageTask:
    path: str
    status: ImageStatus = ImageStatus.pending
    output_path: str | None = None
    error: str | None = None
    analysis: str | None = None


@dataclass
class JobProgress:
    """Per-job counters. ``pending`` counts images that have not resolved yet."""

    total: int
    completed: int = 0
    failed: int = 0
    pending: int = 0

    @classmethod
    def for_images(cls, count: int) -> "JobProgress":
        return cls(total=count, pending=count)


@dataclass
class Job:
    job_id: str
    images: list[ImageTask]
    progress: JobProgress
    status: JobStatus = JobStatus.pending
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    def all_images_resolved(self) -> bool:
        return all(img.status.is_terminal for img in self.images)
