from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from portrait_sheet.api.v1.schemas import JobDetail, JobStartResponse, JobSummary
from portrait_sheet.errors import InvalidRequest, JobNotFound
from portrait_sheet.models.jobs import Job
from portrait_sheet.services.jobs import JobService

router = APIRouter(prefix="/api/v1")


def get_job_service(request: Request) -> JobService:
    """Return the job service created for this application's lifespan."""
    return request.app.state.job_service


def _to_detail(job: Job) -> JobDetail:
    return JobDetail(
        job_id=job.id,
        status=job.status,
        current=job.current,
        total=job.total,
        message=job.message,
        output_dir=job.output_dir,
        saved=job.saved,
        done=job.done,
        error=job.error,
        created_at=job.created_at.isoformat(),
        updated_at=job.updated_at.isoformat(),
    )


@router.get("/health", tags=["health"])
async def health_check(request: Request) -> dict:
    """API v1 health check endpoint, including provider throttle state."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    return {
        "status": "ok",
        "api_version": "v1",
        "provider_rate_limiter": limiter.get_stats() if limiter is not None else None,
    }


@router.post(
    "/generate/start",
    response_model=JobStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["jobs"],
    summary="Start a portrait sheet job",
)
async def start_job(
    request: Request,
    image: UploadFile = File(..., description="Reference portrait (PNG, JPG or WEBP)."),
    output_dir: str = Form("", description="Folder the finished sheet is written into."),
    service: JobService = Depends(get_job_service),
) -> JobStartResponse:
    """
    Accept one portrait and start generating its emotion sheet.

    Returns immediately with the job identifier; progress is observed by
    polling `GET /api/v1/generate/status/{job_id}`.
    """
    max_bytes: int = request.app.state.settings.max_upload_bytes
    # One byte past the cap is enough to detect an oversized upload.
    contents = await image.read(max_bytes + 1)
    if len(contents) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Upload exceeds {max_bytes} bytes.",
        )

    try:
        job_id = service.start(contents, image.filename or "", output_dir)
    except InvalidRequest as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return JobStartResponse(job_id=job_id)


@router.get(
    "/generate/status/{job_id}",
    response_model=JobDetail,
    tags=["jobs"],
    summary="Poll the status of a job",
)
async def get_job_status(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> JobDetail:
    """Return a consistent snapshot of a job's progress."""
    try:
        job = service.poll(job_id)
    except JobNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found.",
        ) from exc

    return _to_detail(job)


@router.get(
    "/jobs",
    response_model=list[JobSummary],
    tags=["jobs"],
    summary="List jobs (development use)",
)
async def list_jobs(service: JobService = Depends(get_job_service)) -> list[JobSummary]:
    """
    List all known jobs.

    Intended primarily for development and debugging.
    """
    return [JobSummary.model_validate(job) for job in service.store.list_jobs()]
