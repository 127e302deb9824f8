"""Scheduled job endpoints."""

from fastapi import APIRouter, Depends, status

from api.schemas.job import JobCreate, JobCreated, JobQueueStatus, JobResponse, ProcessedResponse
from app.dependencies import get_queue
from workflow.jobs import JobQueue

router = APIRouter(tags=["jobs"])


@router.post("", response_model=JobCreated, status_code=status.HTTP_201_CREATED)
async def schedule_job(
    request: JobCreate,
    queue: JobQueue = Depends(get_queue),
) -> JobCreated:
    """Schedule a workflow run."""
    job_id = await queue.schedule_workflow(
        workflow_slug=request.workflow_slug,
        workflow_id=request.workflow_id,
        scheduled_for=request.scheduled_for,
        input=request.input,
        max_retries=request.max_retries,
    )
    return JobCreated(job_id=job_id)


@router.post("/process", response_model=ProcessedResponse)
async def process_jobs(queue: JobQueue = Depends(get_queue)) -> ProcessedResponse:
    """Run due jobs now instead of waiting for the next poll."""
    return ProcessedResponse(processed=await queue.process_pending_jobs())


@router.get("/status", response_model=JobQueueStatus)
async def job_queue_status(queue: JobQueue = Depends(get_queue)) -> JobQueueStatus:
    return JobQueueStatus(**await queue.get_job_queue_status())


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, queue: JobQueue = Depends(get_queue)) -> JobResponse:
    return JobResponse.model_validate(await queue.get_job(job_id))


@router.post("/{job_id}/retry", response_model=JobResponse)
async def retry_job(job_id: str, queue: JobQueue = Depends(get_queue)) -> JobResponse:
    """Requeue a job to run as soon as possible."""
    return JobResponse.model_validate(await queue.retry_job(job_id))


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(job_id: str, queue: JobQueue = Depends(get_queue)) -> JobResponse:
    """Cancel a job that has not finished."""
    return JobResponse.model_validate(await queue.cancel_job(job_id))
