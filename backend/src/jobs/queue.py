"""Job Queue - durable storage and state transitions of integration jobs.

All worker-side writes are compare-and-set on lease_version:

- claim_next() picks the oldest eligible job and claims it with a conditional
  UPDATE. Losing the race to another worker returns None. Reclaiming an
  expired lease consumes an attempt.
- Outcome writes (completed / retry / failed) only apply while the job is
  still processing under the lease the worker claimed. A job cancelled or
  reclaimed in the meantime is left untouched.

claim_next() commits its own transaction. Every other method flushes and
leaves the commit to the caller.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit.service import log_integration_event, LEVEL_ERROR
from config import Settings, get_settings
from models import IntegrationJob, IntegrationJobStatus, IntegrationJobType, utcnow
from portals.errors import ErrorKind, IntegrationError
from .idempotency import build_idempotency_key
from .status import CLAIMABLE_STATUSES, validate_transition

logger = logging.getLogger(__name__)


class IdempotencyConflictError(Exception):
    """Idempotency key already belongs to a job for another tenant, vehicle,
    portal or action."""

    def __init__(self, key: str):
        self.key = key
        super().__init__("Idempotency key is already used by a different job")


class JobQueue:
    """Enqueue, claim and transition IntegrationJob rows.

    Usage:
        queue = JobQueue(db)
        job, created = queue.enqueue(tenant_id, vehicle_id, "olx", "publish")
        db.commit()

        job = queue.claim_next(worker_id="worker-1")
        ...
        queue.mark_completed(job)
        db.commit()
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock

    def enqueue(
        self,
        tenant_id: UUID,
        vehicle_id: UUID,
        portal_code: str,
        job_type: IntegrationJobType,
        content_version: Optional[str] = None,
        max_attempts: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> Tuple[IntegrationJob, bool]:
        """Insert a pending job unless one with the same idempotency key exists.

        Args:
            tenant_id: Owning tenant
            vehicle_id: Vehicle the job acts on
            portal_code: Target portal
            job_type: Action to perform
            content_version: Vehicle content version folded into the default key
            max_attempts: Retry budget (defaults to JOB_DEFAULT_MAX_ATTEMPTS)
            idempotency_key: Explicit key overriding the derived one

        Returns:
            Tuple of (job, created). created is False when an existing job
            with the same key was returned.

        Raises:
            ValueError: If job_type is unknown or max_attempts < 1
            IdempotencyConflictError: If the key belongs to a job for a
                different (tenant, vehicle, portal, action)
        """
        job_type = IntegrationJobType(job_type)
        if max_attempts is None:
            max_attempts = self.settings.JOB_DEFAULT_MAX_ATTEMPTS
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        key = idempotency_key or build_idempotency_key(
            vehicle_id, portal_code, job_type.value, content_version
        )

        existing = self.get_by_idempotency_key(key)
        if existing is not None:
            self._check_same_job(existing, tenant_id, vehicle_id, portal_code, job_type)
            logger.info(
                "Duplicate enqueue returned existing job",
                extra={"job_id": str(existing.id), "tenant_id": str(tenant_id), "portal_code": portal_code}
            )
            return existing, False

        now = self.clock()
        job = IntegrationJob(
            tenant_id=tenant_id,
            vehicle_id=vehicle_id,
            portal_code=portal_code,
            job_type=job_type,
            status=IntegrationJobStatus.PENDING,
            attempts=0,
            max_attempts=max_attempts,
            next_attempt_at=now,
            idempotency_key=key,
            lease_version=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(job)
        try:
            self.db.flush()
        except IntegrityError:
            # Concurrent enqueue with the same key won
            self.db.rollback()
            existing = self.get_by_idempotency_key(key)
            if existing is None:
                raise
            self._check_same_job(existing, tenant_id, vehicle_id, portal_code, job_type)
            return existing, False

        logger.info(
            f"Enqueued {job_type.value} job for {portal_code}",
            extra={"job_id": str(job.id), "tenant_id": str(tenant_id), "portal_code": portal_code}
        )
        return job, True

    def _check_same_job(
        self,
        existing: IntegrationJob,
        tenant_id: UUID,
        vehicle_id: UUID,
        portal_code: str,
        job_type: IntegrationJobType,
    ) -> None:
        if (
            existing.tenant_id != tenant_id
            or existing.vehicle_id != vehicle_id
            or existing.portal_code != portal_code
            or existing.job_type != job_type.value
        ):
            logger.warning(
                "Idempotency key reused for a different job",
                extra={"job_id": str(existing.id), "tenant_id": str(tenant_id), "portal_code": portal_code}
            )
            raise IdempotencyConflictError(existing.idempotency_key)

    def get(self, job_id: UUID) -> Optional[IntegrationJob]:
        return self.db.get(IntegrationJob, job_id)

    def get_by_idempotency_key(self, key: str) -> Optional[IntegrationJob]:
        return self.db.query(IntegrationJob).filter(
            IntegrationJob.idempotency_key == key
        ).first()

    def list_jobs(
        self,
        tenant_id: UUID,
        status: Optional[IntegrationJobStatus] = None,
        portal_code: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[IntegrationJob], int]:
        """Jobs of a tenant, newest first, with total count."""
        query = self.db.query(IntegrationJob).filter(IntegrationJob.tenant_id == tenant_id)
        if status is not None:
            query = query.filter(IntegrationJob.status == IntegrationJobStatus(status).value)
        if portal_code:
            query = query.filter(IntegrationJob.portal_code == portal_code)

        total = query.with_entities(func.count(IntegrationJob.id)).scalar()
        jobs = query.order_by(IntegrationJob.created_at.desc()).offset(offset).limit(limit).all()
        return jobs, total

    def claim_next(self, worker_id: str) -> Optional[IntegrationJob]:
        """Atomically claim the oldest eligible job.

        Eligible: status pending or processing (expired lease) with
        next_attempt_at <= now. The claim sets status=processing, bumps
        lease_version, records claimed_by and moves next_attempt_at to the
        lease deadline.

        Reclaiming an expired lease counts as an attempt, since the worker
        that held it is presumed lost. A job whose attempts are exhausted is
        failed instead of reclaimed, so a job that keeps killing its worker
        cannot loop forever.

        Returns:
            The claimed job, or None if nothing is eligible or another worker
            claimed the candidate first
        """
        claimable = [s.value for s in CLAIMABLE_STATUSES]

        while True:
            now = self.clock()
            candidate = (
                self.db.query(
                    IntegrationJob.id,
                    IntegrationJob.lease_version,
                    IntegrationJob.status,
                    IntegrationJob.attempts,
                    IntegrationJob.max_attempts,
                )
                .filter(
                    IntegrationJob.status.in_(claimable),
                    IntegrationJob.next_attempt_at <= now,
                )
                .order_by(IntegrationJob.created_at.asc(), IntegrationJob.id.asc())
                .with_for_update(skip_locked=True)
                .first()
            )
            if candidate is None:
                self.db.rollback()
                return None

            job_id, lease_version, status, attempts, max_attempts = candidate
            reclaim = status == IntegrationJobStatus.PROCESSING.value

            if reclaim and attempts >= max_attempts:
                self._fail_abandoned(job_id, lease_version, attempts, now)
                continue

            values: Dict[str, Any] = {
                "status": IntegrationJobStatus.PROCESSING.value,
                "lease_version": lease_version + 1,
                "claimed_by": worker_id,
                "next_attempt_at": now + timedelta(seconds=self.settings.WORKER_LEASE_SECONDS),
                "updated_at": now,
            }
            if reclaim:
                values["attempts"] = attempts + 1

            result = self.db.execute(
                update(IntegrationJob)
                .where(
                    IntegrationJob.id == job_id,
                    IntegrationJob.lease_version == lease_version,
                    IntegrationJob.status.in_(claimable),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                logger.debug(f"Lost claim race for job {job_id}")
                return None

            self.db.commit()
            if reclaim:
                logger.warning(
                    f"Reclaimed job with expired lease (attempt {attempts + 1}/{max_attempts})",
                    extra={"job_id": str(job_id), "worker_id": worker_id}
                )
            return self.db.get(IntegrationJob, job_id, populate_existing=True)

    def _fail_abandoned(self, job_id: UUID, lease_version: int, attempts: int, now: datetime) -> None:
        """Fail a processing job whose lease expired with no attempts left."""
        message = f"Worker lease expired after {attempts} attempt(s); giving up"
        result = self.db.execute(
            update(IntegrationJob)
            .where(
                IntegrationJob.id == job_id,
                IntegrationJob.lease_version == lease_version,
                IntegrationJob.status == IntegrationJobStatus.PROCESSING.value,
            )
            .values(
                status=IntegrationJobStatus.FAILED.value,
                lease_version=lease_version + 1,
                error_message=message,
                error_kind=ErrorKind.TRANSPORT.value,
                completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            job = self.db.get(IntegrationJob, job_id, populate_existing=True)
            log_integration_event(
                self.db, job.tenant_id, job.portal_code, LEVEL_ERROR,
                f"Failed ({ErrorKind.TRANSPORT.value}): {message}",
                job_id=job_id, vehicle_id=job.vehicle_id,
            )
            logger.error(message, extra={"job_id": str(job_id), "tenant_id": str(job.tenant_id)})
        self.db.commit()

    def is_still_claimed(self, job: IntegrationJob) -> bool:
        """True while the job is processing under the lease held in memory."""
        row = self.db.query(IntegrationJob.status, IntegrationJob.lease_version).filter(
            IntegrationJob.id == job.id
        ).first()
        if row is None:
            return False
        status, lease_version = row
        return status == IntegrationJobStatus.PROCESSING.value and lease_version == job.lease_version

    def mark_completed(self, job: IntegrationJob, lease_version: Optional[int] = None) -> bool:
        """Record success. Returns False if the lease was lost."""
        now = self.clock()
        return self._transition(
            job,
            IntegrationJobStatus.COMPLETED,
            lease_version,
            error_message=None,
            error_kind=None,
            completed_at=now,
        )

    def schedule_retry(
        self,
        job: IntegrationJob,
        error: IntegrationError,
        delay: timedelta,
        lease_version: Optional[int] = None,
    ) -> bool:
        """Return the job to pending with attempts + 1 after a retryable error.

        Returns:
            False if the lease was lost
        """
        now = self.clock()
        return self._transition(
            job,
            IntegrationJobStatus.PENDING,
            lease_version,
            attempts=IntegrationJob.attempts + 1,
            next_attempt_at=now + delay,
            error_message=error.message,
            error_kind=error.kind.value,
            claimed_by=None,
        )

    def mark_failed(
        self,
        job: IntegrationJob,
        error: IntegrationError,
        lease_version: Optional[int] = None,
    ) -> bool:
        """Record a permanent failure. Attempts stay unchanged."""
        now = self.clock()
        return self._transition(
            job,
            IntegrationJobStatus.FAILED,
            lease_version,
            error_message=error.message,
            error_kind=error.kind.value,
            completed_at=now,
        )

    def cancel(self, job_id: UUID) -> bool:
        """Cancel a pending or processing job.

        Bumps lease_version so that an in-flight worker's outcome write no
        longer applies.

        Returns:
            True if the job was cancelled, False if missing or already terminal
        """
        job = self.get(job_id)
        if job is None:
            return False

        now = self.clock()
        result = self.db.execute(
            update(IntegrationJob)
            .where(
                IntegrationJob.id == job_id,
                IntegrationJob.status.in_([s.value for s in CLAIMABLE_STATUSES]),
            )
            .values(
                status=IntegrationJobStatus.CANCELLED.value,
                lease_version=IntegrationJob.lease_version + 1,
                completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
        self.db.expire(job)

        cancelled = result.rowcount == 1
        if cancelled:
            logger.info("Job cancelled", extra={"job_id": str(job_id), "tenant_id": str(job.tenant_id)})
        return cancelled

    def _transition(
        self,
        job: IntegrationJob,
        new_status: IntegrationJobStatus,
        lease_version: Optional[int] = None,
        **values: Any,
    ) -> bool:
        """Conditional write on (status=processing, lease_version=claimed lease).

        lease_version defaults to the one loaded on job. Callers that rolled
        back since the claim pass the lease they captured at claim time.
        """
        validate_transition(IntegrationJobStatus.PROCESSING, new_status)
        if lease_version is None:
            lease_version = job.lease_version

        now = self.clock()
        changes: Dict[str, Any] = {
            "status": new_status.value,
            "lease_version": lease_version + 1,
            "updated_at": now,
        }
        changes.update(values)

        result = self.db.execute(
            update(IntegrationJob)
            .where(
                IntegrationJob.id == job.id,
                IntegrationJob.lease_version == lease_version,
                IntegrationJob.status == IntegrationJobStatus.PROCESSING.value,
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
        self.db.expire(job)

        if result.rowcount != 1:
            logger.warning(
                f"Lease lost before recording {new_status.value}",
                extra={"job_id": str(job.id), "tenant_id": str(job.tenant_id)}
            )
            return False
        return True
