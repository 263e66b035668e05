"""SQLAlchemy Models for ListingSync"""

from .base import Base, PortableJSONB, UTCDateTime, utcnow
from .vehicle import Vehicle, VehicleMedia
from .portal_connection import PortalConnection
from .portal_listing import PortalListing
from .integration_job import IntegrationJob, IntegrationJobStatus, IntegrationJobType
from .integration_log import IntegrationLog, AUTH_FLOW_JOB_ID

__all__ = [
    "Base",
    "PortableJSONB",
    "UTCDateTime",
    "utcnow",
    "Vehicle",
    "VehicleMedia",
    "PortalConnection",
    "PortalListing",
    "IntegrationJob",
    "IntegrationJobStatus",
    "IntegrationJobType",
    "IntegrationLog",
    "AUTH_FLOW_JOB_ID",
]
