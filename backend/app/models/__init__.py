from app.models.entities import (
    ImageStatus,
    ImageTask,
    Job,
    JobProgress,
    JobStatus,
)

__all__ = [
    "Job",
    "JobStatus",
    "JobProgress",
    "ImageTask",
    "ImageStatus",
]
