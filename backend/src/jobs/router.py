"""Integration job endpoints.

Callers (UI actions, automation) queue work here; the worker executes it.
Jobs are never deleted through the API, only cancelled.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from database import get_db
from models import IntegrationJobStatus, Vehicle
from .queue import IdempotencyConflictError, JobQueue
from .schemas import (
    EnqueueJobRequest,
    EnqueueJobResponse,
    IntegrationJobListResponse,
    IntegrationJobResponse,
)


router = APIRouter(prefix="/api/integrations/jobs", tags=["Integration Jobs"])


def get_job_queue(db: Session = Depends(get_db)) -> JobQueue:
    return JobQueue(db)


@router.post("", response_model=EnqueueJobResponse, status_code=status.HTTP_201_CREATED)
def enqueue_job(
    request: EnqueueJobRequest,
    response: Response,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_job_queue),
) -> EnqueueJobResponse:
    """Queue a portal action for a vehicle.

    Returns 201 for a new job and 200 with the existing job when an identical
    request (same idempotency key) was already queued. A key already used for
    another tenant, vehicle, portal or action is rejected with 409.
    """
    vehicle = db.query(Vehicle).filter(
        Vehicle.id == request.vehicle_id,
        Vehicle.tenant_id == request.tenant_id,
    ).first()
    if vehicle is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Vehicle {request.vehicle_id} not found",
        )

    content_version = request.content_version
    if content_version is None and vehicle.updated_at is not None:
        content_version = vehicle.updated_at.isoformat()

    try:
        job, created = queue.enqueue(
            tenant_id=request.tenant_id,
            vehicle_id=request.vehicle_id,
            portal_code=request.portal_code,
            job_type=request.job_type,
            content_version=content_version,
            max_attempts=request.max_attempts,
            idempotency_key=request.idempotency_key,
        )
    except IdempotencyConflictError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    db.commit()
    db.refresh(job)

    if not created:
        response.status_code = status.HTTP_200_OK
    return EnqueueJobResponse(job=IntegrationJobResponse.model_validate(job), created=created)


@router.get("", response_model=IntegrationJobListResponse)
def list_jobs(
    tenant_id: UUID = Query(..., description="Tenant whose jobs to list"),
    status_filter: Optional[IntegrationJobStatus] = Query(None, alias="status"),
    portal_code: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    queue: JobQueue = Depends(get_job_queue),
) -> IntegrationJobListResponse:
    """List a tenant's jobs, newest first."""
    jobs, total = queue.list_jobs(
        tenant_id,
        status=status_filter,
        portal_code=portal_code,
        offset=(page - 1) * per_page,
        limit=per_page,
    )
    return IntegrationJobListResponse(
        items=[IntegrationJobResponse.model_validate(j) for j in jobs],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{job_id}", response_model=IntegrationJobResponse)
def get_job(
    job_id: UUID,
    tenant_id: UUID = Query(...),
    queue: JobQueue = Depends(get_job_queue),
) -> IntegrationJobResponse:
    job = queue.get(job_id)
    if job is None or job.tenant_id != tenant_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return IntegrationJobResponse.model_validate(job)


@router.post("/{job_id}/cancel", response_model=IntegrationJobResponse)
def cancel_job(
    job_id: UUID,
    tenant_id: UUID = Query(...),
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_job_queue),
) -> IntegrationJobResponse:
    """Cancel a pending or processing job.

    Returns 409 when the job already reached a terminal status.
    """
    job = queue.get(job_id)
    if job is None or job.tenant_id != tenant_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    if not queue.cancel(job_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job is already {job.status}",
        )
    db.commit()
    db.refresh(job)
    return IntegrationJobResponse.model_validate(job)
