"""IntegrationJob model - durable queue of portal work items."""

import uuid
from enum import Enum

from sqlalchemy import Column, Integer, Text, String, Index, Uuid, CheckConstraint, text
from sqlalchemy.orm import validates

from .base import Base, UTCDateTime, utcnow


class IntegrationJobStatus(str, Enum):
    """Lifecycle status of an integration job.

    Values:
        PENDING: Waiting for a worker (new, or scheduled for retry)
        PROCESSING: Claimed by a worker
        COMPLETED: Adapter call succeeded (terminal)
        FAILED: Permanent failure or retries exhausted (terminal)
        CANCELLED: Cancelled by an external actor (terminal)
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class IntegrationJobType(str, Enum):
    """Action a job performs against a portal."""
    PUBLISH = "publish"
    UPDATE = "update"
    PAUSE = "pause"
    DELETE = "delete"
    SYNC_STATUS = "sync_status"


class IntegrationJob(Base):
    """Integration job - one asynchronous unit of work against a portal.

    Jobs are inserted with status=pending by callers (UI actions, automation)
    and mutated only by the worker. Rows are never deleted; terminal jobs are
    kept for audit.

    lease_version is bumped on every claim and every terminal/retry write so
    that all worker updates are conditional (compare-and-set) on the claim
    they were made under.
    """
    __tablename__ = "integration_job"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False)
    vehicle_id = Column(Uuid, nullable=False)
    portal_code = Column(Text, nullable=False)
    job_type = Column(String(20), nullable=False)
    status = Column(
        String(20),
        nullable=False,
        default=IntegrationJobStatus.PENDING.value,
    )
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    next_attempt_at = Column(UTCDateTime, nullable=False, default=utcnow)
    error_message = Column(Text, nullable=True)
    error_kind = Column(String(20), nullable=True)
    idempotency_key = Column(Text, nullable=False, unique=True)
    lease_version = Column(Integer, nullable=False, default=0)
    claimed_by = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="ck_integration_job_status",
        ),
        CheckConstraint(
            "job_type IN ('publish', 'update', 'pause', 'delete', 'sync_status')",
            name="ck_integration_job_type",
        ),
        CheckConstraint("attempts >= 0", name="ck_integration_job_attempts"),
        Index("idx_integration_job_claim", "status", "next_attempt_at", "created_at"),
        Index("idx_integration_job_tenant", "tenant_id", text("created_at DESC")),
    )

    @validates("status")
    def validate_status(self, key, value):
        """Ensure status is valid."""
        value = value.value if isinstance(value, IntegrationJobStatus) else value
        valid = [s.value for s in IntegrationJobStatus]
        if value not in valid:
            raise ValueError(f"Invalid status: {value}. Must be one of: {', '.join(valid)}")
        return value

    @validates("job_type")
    def validate_job_type(self, key, value):
        """Ensure job_type is valid."""
        value = value.value if isinstance(value, IntegrationJobType) else value
        valid = [t.value for t in IntegrationJobType]
        if value not in valid:
            raise ValueError(f"Invalid job_type: {value}. Must be one of: {', '.join(valid)}")
        return value

    @validates("attempts")
    def validate_attempts(self, key, value):
        """Ensure attempts is non-negative."""
        if value < 0:
            raise ValueError("attempts must be non-negative")
        return value

    def __repr__(self):
        return (
            f"<IntegrationJob(id={self.id}, type='{self.job_type}', "
            f"portal='{self.portal_code}', status='{self.status}', attempts={self.attempts})>"
        )
