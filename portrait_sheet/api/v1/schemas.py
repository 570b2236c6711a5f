from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    """Lifecycle states for a portrait sheet job."""

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


class JobStartResponse(BaseModel):
    """Response returned when a new job is accepted."""

    job_id: str = Field(..., description="Server-generated unique job identifier.")


class JobSummary(BaseModel):
    """Lightweight view of a job suitable for listings."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique job identifier.")
    status: JobStatus = Field(..., description="Current lifecycle status for the job.")
    current: int = Field(..., description="Number of finished steps.")
    total: int = Field(..., description="Total number of steps.")


class JobDetail(BaseModel):
    """Status snapshot returned to polling clients."""

    job_id: str = Field(..., description="Unique job identifier.")
    status: JobStatus = Field(..., description="Current lifecycle status for the job.")
    current: int = Field(..., ge=0, description="Number of finished steps (0..total).")
    total: int = Field(..., ge=1, description="Total number of steps, fixed per job.")
    message: str = Field(..., description="Human-readable description of the current activity.")
    output_dir: str | None = Field(
        default=None,
        description="Resolved output directory, set once validation succeeds.",
    )
    saved: List[str] = Field(
        default_factory=list,
        description="Paths of artifacts actually written, in write order.",
    )
    done: bool = Field(..., description="True once the job reached a terminal status.")
    error: str | None = Field(
        default=None,
        description="Failure description, only present in 'error' status.",
    )
    created_at: str = Field(
        ...,
        description="Job creation timestamp in ISO 8601 format (UTC).",
    )
    updated_at: str = Field(
        ...,
        description="Last modification timestamp in ISO 8601 format (UTC).",
    )
