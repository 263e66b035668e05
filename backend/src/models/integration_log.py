"""IntegrationLog SQLAlchemy model"""

import uuid

from sqlalchemy import Column, Text, String, Index, Uuid, CheckConstraint

from .base import Base, UTCDateTime, utcnow

# job_id recorded for events that do not belong to a job (OAuth flow)
AUTH_FLOW_JOB_ID = "auth-flow"


class IntegrationLog(Base):
    """Append-only, human-readable trail of integration events.

    Entries are keyed by tenant, portal and job and should never be updated
    or deleted by the application. Retention is handled outside this service.
    """
    __tablename__ = "integration_log"
    __table_args__ = (
        CheckConstraint("level IN ('info', 'error')", name="ck_integration_log_level"),
        Index("ix_integration_log_tenant_created_at", "tenant_id", "created_at"),
        Index("ix_integration_log_job_id", "job_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False)
    portal_code = Column(Text, nullable=False)
    job_id = Column(Text, nullable=False)
    vehicle_id = Column(Uuid, nullable=True)
    level = Column(String(10), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return (
            f"<IntegrationLog(id={self.id}, portal='{self.portal_code}', "
            f"job_id='{self.job_id}', level='{self.level}')>"
        )
