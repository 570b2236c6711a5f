from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List

from portrait_sheet.api.v1.schemas import JobStatus
from portrait_sheet.models.emotions import TOTAL_STEPS


def utcnow() -> datetime:
    """Return an explicit, timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class UploadedImage:
    """Raw bytes and original filename of the single uploaded portrait."""

    data: bytes
    filename: str = ""


@dataclass(slots=True)
class Job:
    """
    Internal representation of one portrait sheet run.

    Instances held by the job store are mutated only through the store's
    transition methods; everything handed out to callers is a copy.
    """

    id: str
    source_filename: str = ""
    status: JobStatus = JobStatus.QUEUED
    current: int = 0
    total: int = TOTAL_STEPS
    message: str = "Queued"
    # Resolved destination, only known once the directory probe succeeded.
    output_dir: str | None = None
    saved: List[str] = field(default_factory=list)
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def done(self) -> bool:
        return self.status.is_terminal

    def snapshot(self) -> "Job":
        """Return a detached copy that later transitions cannot touch."""
        return Job(
            id=self.id,
            source_filename=self.source_filename,
            status=self.status,
            current=self.current,
            total=self.total,
            message=self.message,
            output_dir=self.output_dir,
            saved=list(self.saved),
            error=self.error,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
