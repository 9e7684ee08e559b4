from datetime import datetime

from pydantic import BaseModel, Field

from app.models import ImageStatus, Job


class ImageTaskOut(BaseModel):
    path: str
    status: str
    output_path: str | None = None
    error: str | None = None
    analysis: str | None = None


class ProgressOut(BaseModel):
    total: int
    completed: int
    failed: int
    pending: int = Field(ge=0, description="Images not yet completed or failed (pending or processing)")


class JobOut(BaseModel):
    job_id: str
    status: str
    images: list[ImageTaskOut]
    progress: ProgressOut
    created_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobOut":
        return cls(
            job_id=job.job_id,
            status=job.status.value,
            images=[
                ImageTaskOut(
                    path=img.path,
                    status=img.status.value,
                    output_path=img.output_path,
                    error=img.error,
                    analysis=img.analysis,
                )
                for img in job.images
            ],
            progress=ProgressOut(
                total=job.progress.total,
                completed=job.progress.completed,
                failed=job.progress.failed,
                pending=job.progress.pending,
            ),
            created_at=job.created_at,
            completed_at=job.completed_at,
        )

    def completed_outputs(self) -> list[str]:
        """Output paths of successfully processed images, in upload order."""
        return [
            img.output_path
            for img in self.images
            if img.status == ImageStatus.completed.value and img.output_path
        ]


class QueueStatsOut(BaseModel):
    total_jobs: int
    active_jobs: int
    queued_jobs: int
    max_concurrent: int
