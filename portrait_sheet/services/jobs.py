from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Coroutine, Dict, Iterator, List, Set
from uuid import uuid4

from portrait_sheet.api.v1.schemas import JobStatus
from portrait_sheet.errors import InvalidRequest, JobNotFound, JobStateError
from portrait_sheet.models.jobs import Job, UploadedImage, utcnow

if TYPE_CHECKING:
    from portrait_sheet.services.pipeline import SheetPipeline

logger = logging.getLogger(__name__)


class JobStore:
    """
    In-memory registry of portrait sheet jobs.

    This is the only process-wide mutable state. Records are changed only
    through the transition methods below, each applied under one lock, so a
    reader always gets a self-consistent snapshot. The store also keeps the
    asyncio tasks running each job so they can be drained on shutdown.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._tasks: Set[asyncio.Task] = set()

    def create(self, source_filename: str = "") -> Job:
        """Insert a fresh job in `queued` state and return a snapshot of it."""
        job = Job(id=str(uuid4()), source_filename=source_filename)
        with self._lock:
            self._jobs[job.id] = job
            snapshot = job.snapshot()
        logger.info("Created job %s for %r", job.id, source_filename)
        return snapshot

    def get(self, job_id: str) -> Job | None:
        """Retrieve a snapshot of a job by its identifier, if it exists."""
        with self._lock:
            job = self._jobs.get(job_id)
            return job.snapshot() if job is not None else None

    def list_jobs(self) -> List[Job]:
        """Return snapshots of all known jobs. Intended for debugging and admin tooling."""
        with self._lock:
            return [job.snapshot() for job in self._jobs.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    @contextmanager
    def _mutate(self, job_id: str, *allowed: JobStatus) -> Iterator[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            if allowed and job.status not in allowed:
                raise JobStateError(
                    f"Job {job_id} is {job.status.value}, expected one of "
                    f"{', '.join(s.value for s in allowed)}"
                )
            yield job
            job.updated_at = utcnow()

    def mark_running(self, job_id: str, message: str) -> None:
        with self._mutate(job_id, JobStatus.QUEUED) as job:
            job.status = JobStatus.RUNNING
            job.message = message
        logger.info("Job %s running", job_id)

    def set_message(self, job_id: str, message: str) -> None:
        with self._mutate(job_id, JobStatus.RUNNING) as job:
            job.message = message

    def set_output_dir(self, job_id: str, output_dir: str) -> None:
        with self._mutate(job_id, JobStatus.RUNNING) as job:
            if job.output_dir is not None:
                raise JobStateError(f"Job {job_id} already has an output folder")
            job.output_dir = output_dir

    def record_progress(self, job_id: str, current: int, message: str) -> None:
        """Record a finished step. `current` never moves backwards or past `total`."""
        with self._mutate(job_id, JobStatus.RUNNING) as job:
            if current < job.current or current > job.total:
                raise JobStateError(
                    f"Job {job_id} progress {current} invalid (current {job.current}, total {job.total})"
                )
            job.current = current
            job.message = message
        logger.info("Job %s: %s", job_id, message)

    def mark_done(self, job_id: str, saved_path: str) -> None:
        """Record the written sheet and finish the job in one step."""
        with self._mutate(job_id, JobStatus.RUNNING) as job:
            job.saved.append(saved_path)
            job.status = JobStatus.DONE
            job.message = "Done"
        logger.info("Job %s done, saved %s", job_id, saved_path)

    def mark_failed(self, job_id: str, error: str) -> None:
        with self._mutate(job_id, JobStatus.QUEUED, JobStatus.RUNNING) as job:
            job.status = JobStatus.ERROR
            job.error = error
            job.message = "Error"
        logger.warning("Job %s failed: %s", job_id, error)

    def launch(self, job_id: str, coro: Coroutine) -> asyncio.Task:
        """
        Run `coro` as an independent task that owns `job_id` until terminal.

        Must be called from inside the running event loop.
        """
        task = asyncio.get_running_loop().create_task(coro, name=f"sheet-job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._task_finished)
        return task

    def _task_finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Task %s ended with an unhandled error",
                task.get_name(),
                exc_info=task.exception(),
            )

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for running jobs to reach a terminal state before shutdown."""
        if not self._tasks:
            return
        logger.info("Draining %d running job(s)", len(self._tasks))
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("%d job(s) still running after %.1fs drain", len(pending), timeout or 0.0)


class JobService:
    """
    Boundary for starting and polling jobs.

    Starting validates the request, inserts the initial record and hands the
    job to the pipeline without waiting for it.
    """

    def __init__(self, store: JobStore, pipeline: "SheetPipeline") -> None:
        self._store = store
        self._pipeline = pipeline

    @property
    def store(self) -> JobStore:
        return self._store

    def start(self, image: bytes, filename: str, output_dir: str) -> str:
        if not image:
            raise InvalidRequest("No file uploaded")
        output_dir = (output_dir or "").strip()
        if not output_dir:
            raise InvalidRequest("Missing output_dir")

        job = self._store.create(source_filename=filename or "")
        upload = UploadedImage(data=image, filename=filename or "")
        self._store.launch(job.id, self._pipeline.run(job.id, upload, output_dir))
        return job.id

    def poll(self, job_id: str) -> Job:
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job
