"""Pytest fixtures for the integration pipeline.

Provides reusable test fixtures for:
- In-memory SQLite database with fresh tables per test
- Token cipher, frozen clock and worker settings
- Demo portal / adapter registry and a wired IntegrationWorker
- Vehicle and portal connection factories
- FastAPI test client with the database dependency overridden

Usage:
    def test_publish(worker, job_queue, make_vehicle, db_session):
        vehicle = make_vehicle()
        job, _ = job_queue.enqueue(vehicle.tenant_id, vehicle.id, "demo", "publish")
        db_session.commit()
        assert worker.poll_once()
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator, List, Optional
from uuid import UUID, uuid4

# Set environment variables BEFORE any imports to ensure they take effect
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("TOKEN_ENCRYPTION_SECRET", "test-token-encryption-secret-0123456789abcdef")
os.environ.setdefault("APP_URL", "http://app.test")
os.environ.setdefault("OLX_CLIENT_ID", "test-client-id")
os.environ.setdefault("OLX_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("OLX_AUTH_URL", "https://auth.olx.test/oauth")
os.environ.setdefault("OLX_IDENTITY_URL", "https://apps.olx.test/oauth_api/basic_user_info")
os.environ.setdefault("OLX_API_BASE_URL", "https://apps.olx.test/autoupload")
os.environ.setdefault("LOG_JSON", "false")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import Settings, get_settings
from credentials.store import CredentialStore
from infrastructure.encryption import TokenCipher
from jobs.queue import JobQueue
from models import Base, PortalConnection, Vehicle, VehicleMedia
from portals.implementations import DemoPortal
from portals.registry import AdapterRegistry, build_default_registry
from workers.integration_worker import IntegrationWorker


TEST_SECRET = os.environ["TOKEN_ENCRYPTION_SECRET"]

# Single shared in-memory database; StaticPool keeps one connection alive
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


from database import get_db as database_get_db


class FrozenClock:
    """Deterministic clock passed wherever production code takes `clock`."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def session_factory(db_session):
    """Session factory for the worker (same database as db_session)."""
    return TestingSessionLocal


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with fast worker timings."""
    return get_settings().model_copy(update={
        "WORKER_POLL_INTERVAL_SECONDS": 0.01,
        "WORKER_ADAPTER_TIMEOUT_SECONDS": 5.0,
        "WORKER_BACKOFF_UNIT_SECONDS": 10,
        "WORKER_BACKOFF_MAX_SECONDS": 3600,
        "WORKER_LEASE_SECONDS": 300,
        "JOB_DEFAULT_MAX_ATTEMPTS": 3,
    })


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(TEST_SECRET)


@pytest.fixture
def demo_portal() -> DemoPortal:
    return DemoPortal(start_id=123)


@pytest.fixture
def registry(test_settings, demo_portal) -> AdapterRegistry:
    return build_default_registry(test_settings, demo_portal=demo_portal)


@pytest.fixture
def worker(session_factory, registry, cipher, test_settings, clock) -> IntegrationWorker:
    return IntegrationWorker(
        session_factory=session_factory,
        registry=registry,
        cipher=cipher,
        settings=test_settings,
        clock=clock,
        worker_id="test-worker",
    )


@pytest.fixture
def job_queue(db_session, test_settings, clock) -> JobQueue:
    return JobQueue(db_session, test_settings, clock)


@pytest.fixture
def tenant_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_vehicle(db_session: Session, tenant_id: UUID, clock: FrozenClock):
    """Factory creating committed vehicles.

    Defaults satisfy both the demo (20 chars, 1 photo) and OLX
    (50 chars, 2 photos) listing rules.
    """
    def _make(
        description: str = "Well maintained sedan, single owner, full service history at the dealer.",
        photos: int = 2,
        price: Optional[float] = 45000,
        fuel: str = "flex",
        transmission: str = "automatic",
        tenant: Optional[UUID] = None,
        title: Optional[str] = None,
        cover_index: Optional[int] = None,
    ) -> Vehicle:
        vehicle = Vehicle(
            tenant_id=tenant or tenant_id,
            brand="Toyota",
            model="Corolla",
            version="XEi 2.0",
            year_manufacture=2021,
            year_model=2022,
            price=price,
            km=35000,
            fuel=fuel,
            transmission=transmission,
            color="Silver",
            title=title,
            description=description,
            features=["air_conditioning", "power_steering"],
            created_at=clock(),
            updated_at=clock(),
        )
        vehicle.media = [
            VehicleMedia(
                url=f"https://cdn.example.com/photos/{i}.jpg",
                is_cover=(i == cover_index),
                position=i,
            )
            for i in range(photos)
        ]
        db_session.add(vehicle)
        db_session.commit()
        db_session.refresh(vehicle)
        return vehicle

    return _make


@pytest.fixture
def make_connection(db_session: Session, cipher: TokenCipher, tenant_id: UUID, clock: FrozenClock):
    """Factory creating committed portal connections with encrypted tokens."""
    def _make(
        portal_code: str = "olx",
        access_token: str = "access-token-123",
        refresh_token: Optional[str] = "refresh-token-456",
        expires_in: Optional[int] = 3600,
        tenant: Optional[UUID] = None,
    ) -> PortalConnection:
        connection = CredentialStore(db_session, cipher).upsert(
            tenant or tenant_id,
            portal_code,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            now=clock(),
        )
        db_session.commit()
        db_session.refresh(connection)
        return connection

    return _make


class RecordingTransport:
    """httpx MockTransport handler that records requests and replays responses."""

    def __init__(self, handler):
        self.handler = handler
        self.requests: List = []

    def __call__(self, request):
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture
def make_transport():
    """Factory wrapping a handler into a recording httpx.MockTransport.

    Returns (transport, recorder); recorder.requests lists every request sent.
    """
    import httpx

    def _make(handler):
        recorder = RecordingTransport(handler)
        return httpx.MockTransport(recorder), recorder

    return _make


@pytest.fixture
def client(db_session: Session):
    """Create a test client with the database dependency overridden."""
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[database_get_db] = override_get_db

    yield TestClient(app)

    app.dependency_overrides.clear()
