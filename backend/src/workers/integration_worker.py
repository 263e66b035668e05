"""Integration Worker - polls the job queue and executes portal actions.

One job in flight per worker instance. Each poll:

1. Claim the oldest eligible job (atomic, see jobs.queue)
2. Re-check that the job is still ours (skip if cancelled meanwhile)
3. Load the vehicle and build the NormalizedVehicle snapshot
4. Resolve the portal adapter and decrypt credentials
5. Dispatch on job_type, bounded by a per-call timeout
6. Record the outcome: completed, retry with linear backoff, or failed

Auth failures flag the PortalConnection with needs_reauth=True. A
SystemicError (e.g. PostgreSQL 42P17 from a recursive RLS policy) trips the
circuit breaker: the worker latches the error and never polls again.
"""

import contextvars
import logging
import os
import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from uuid import UUID

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit.service import log_integration_event, LEVEL_ERROR, LEVEL_INFO
from config import Settings, get_settings
from credentials.store import CredentialStore
from infrastructure.encryption import TokenCipher
from jobs.backoff import compute_backoff
from jobs.queue import JobQueue
from models import (
    IntegrationJob,
    IntegrationJobType,
    PortalConnection,
    PortalListing,
    utcnow,
)
from observability.metrics import (
    integration_jobs_total,
    integration_job_duration_seconds,
    integration_worker_running,
    integration_worker_halts_total,
    portal_reauth_flags_total,
)
from observability.request_id import set_request_id, reset_request_id
from portals.errors import (
    AuthError,
    ConfigurationError,
    IntegrationError,
    NotFoundError,
    SystemicError,
    TransportError,
    ValidationError,
    classify_exception,
    detect_systemic_error,
)
from portals.ports import PortalAdapter
from portals.registry import AdapterRegistry
from vehicles.normalizer import build_normalized_vehicle, load_vehicle
from vehicles.schemas import NormalizedVehicle

logger = logging.getLogger(__name__)

# portal_code -> callable(db, tenant_id) returning the refreshed connection
TokenRefresher = Callable[[Session, UUID], PortalConnection]


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


class IntegrationWorker:
    """Polling worker for integration jobs.

    Usage:
        worker = IntegrationWorker(SessionLocal, build_default_registry(settings), get_cipher())
        worker.run()          # blocks until stop() or a systemic failure

        # or, from a scheduler:
        worker.poll_once()
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        registry: AdapterRegistry,
        cipher: TokenCipher,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        token_refreshers: Optional[Dict[str, TokenRefresher]] = None,
        worker_id: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.cipher = cipher
        self.settings = settings or get_settings()
        self.clock = clock
        self.token_refreshers = token_refreshers or {}
        self.worker_id = worker_id or default_worker_id()

        self._stop_event = threading.Event()
        self._running = False
        self.halted_by: Optional[SystemicError] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Request the poll loop to stop. Safe to call from any thread."""
        self._stop_event.set()

    def run(self) -> None:
        """Poll until stop() is called or a SystemicError trips the breaker."""
        self._stop_event.clear()
        self._running = True
        integration_worker_running.labels(worker_id=self.worker_id).set(1)
        logger.info(f"Integration worker {self.worker_id} started")

        try:
            while not self._stop_event.is_set():
                try:
                    claimed = self.poll_once()
                except SystemicError:
                    break
                except Exception as e:
                    logger.error(f"Poll iteration failed: {e}", exc_info=True)
                    claimed = False

                if not claimed:
                    self._stop_event.wait(self.settings.WORKER_POLL_INTERVAL_SECONDS)
        finally:
            self._running = False
            integration_worker_running.labels(worker_id=self.worker_id).set(0)
            logger.info(f"Integration worker {self.worker_id} stopped")

    def poll_once(self) -> bool:
        """Claim and execute at most one job.

        The first SystemicError latches the breaker: halted_by is set and
        every later call re-raises it without touching storage. Only a new
        worker (a process restart) clears it.

        Returns:
            True if a job was claimed

        Raises:
            SystemicError: If storage signals a systemic failure, now or on
                an earlier poll
        """
        if self.halted_by is not None:
            raise self.halted_by

        try:
            return self._poll()
        except SystemicError as e:
            self._halt(e)
            raise

    def _halt(self, error: SystemicError) -> None:
        self.halted_by = error
        integration_worker_halts_total.labels(worker_id=self.worker_id).inc()
        logger.critical(f"Systemic failure, worker {self.worker_id} halted: {error.message}")

    def _poll(self) -> bool:
        db = self.session_factory()
        try:
            queue = JobQueue(db, self.settings, self.clock)
            try:
                job = queue.claim_next(self.worker_id)
            except SQLAlchemyError as e:
                db.rollback()
                systemic = detect_systemic_error(e)
                if systemic is not None:
                    raise systemic from e
                raise

            if job is None:
                return False

            self.process_job(db, queue, job)
            return True
        finally:
            db.close()

    def process_job(self, db: Session, queue: JobQueue, job: IntegrationJob) -> None:
        """Execute a claimed job and record its outcome."""
        token = set_request_id(f"job-{job.id}")
        lease_version = job.lease_version
        job_type = job.job_type
        portal_code = job.portal_code
        started = time.monotonic()
        adapter: Optional[PortalAdapter] = None

        try:
            if not queue.is_still_claimed(job):
                db.rollback()
                logger.info(
                    "Job no longer claimable after claim, skipping",
                    extra={"job_id": str(job.id), "portal_code": portal_code}
                )
                integration_jobs_total.labels(
                    portal_code=portal_code, job_type=job_type, outcome="skipped"
                ).inc()
                return

            try:
                vehicle = load_vehicle(db, job.vehicle_id, job.tenant_id)
                snapshot = build_normalized_vehicle(vehicle)
                adapter = self._resolve_adapter(db, job)
                message = self._dispatch(db, job, adapter, snapshot)
            except Exception as e:
                error = classify_exception(e)
                if isinstance(error, SystemicError):
                    db.rollback()
                    if error is e:
                        raise
                    raise error from e
                self._record_failure(db, queue, job, lease_version, error)
            else:
                self._record_success(db, queue, job, lease_version, message)
        except SQLAlchemyError as e:
            db.rollback()
            systemic = detect_systemic_error(e)
            if systemic is not None:
                raise systemic from e
            raise
        finally:
            if adapter is not None:
                try:
                    adapter.close()
                except Exception:
                    logger.warning(f"Closing {portal_code} adapter failed", exc_info=True)
            integration_job_duration_seconds.labels(
                portal_code=portal_code, job_type=job_type
            ).observe(time.monotonic() - started)
            reset_request_id(token)

    def _resolve_adapter(self, db: Session, job: IntegrationJob) -> PortalAdapter:
        """Build the adapter for the job's portal, with credentials if needed.

        Raises:
            ConfigurationError: Unknown portal or no active connection
            AuthError: Connection already flagged, refresh rejected, or the
                stored token cannot be decrypted
        """
        portal_code = job.portal_code
        if not self.registry.is_registered(portal_code):
            raise ConfigurationError(f"Unknown portal '{portal_code}'")

        if not self.registry.requires_credentials(portal_code):
            return self.registry.create(portal_code)

        store = CredentialStore(db, self.cipher)
        connection = store.get(job.tenant_id, portal_code)
        if connection is None or not connection.active:
            raise ConfigurationError(f"Tenant has no active {portal_code} connection")
        if connection.needs_reauth:
            raise AuthError(f"{portal_code} connection needs re-authorization")

        refresher = self.token_refreshers.get(portal_code)
        if refresher is not None and connection.is_expired(self.clock()):
            logger.info(
                f"{portal_code} access token expired, refreshing",
                extra={"tenant_id": str(job.tenant_id), "job_id": str(job.id)}
            )
            connection = refresher(db, job.tenant_id)

        credentials = store.load_credentials(connection)
        return self.registry.create(portal_code, credentials)

    def _dispatch(
        self,
        db: Session,
        job: IntegrationJob,
        adapter: PortalAdapter,
        vehicle: NormalizedVehicle,
    ) -> str:
        """Run the job's action. Returns the success message for the log."""
        job_type = IntegrationJobType(job.job_type)

        if job_type == IntegrationJobType.PUBLISH:
            return self._publish(db, job, adapter, vehicle)

        listing = self._get_listing(db, job)
        if listing is None:
            raise NotFoundError(f"Vehicle has no {job.portal_code} listing")
        now = self.clock()

        if job_type == IntegrationJobType.UPDATE:
            self._validate(adapter, vehicle)
            self._call(adapter.update, listing.external_id, vehicle)
            listing.last_sync_at = now
            message = f"Listing {listing.external_id} updated"

        elif job_type == IntegrationJobType.PAUSE:
            self._call(adapter.pause, listing.external_id)
            listing.status = "paused"
            listing.is_active = False
            message = f"Listing {listing.external_id} paused"

        elif job_type == IntegrationJobType.DELETE:
            self._call(adapter.remove, listing.external_id)
            listing.status = "removed"
            listing.is_active = False
            message = f"Listing {listing.external_id} removed"

        else:
            result = self._call(adapter.sync_status, listing.external_id)
            listing.status = result.status
            listing.is_active = result.is_active
            listing.last_sync_at = now
            message = f"Listing {listing.external_id} status: {result.status}"

        listing.updated_at = now
        db.flush()
        return message

    def _publish(
        self,
        db: Session,
        job: IntegrationJob,
        adapter: PortalAdapter,
        vehicle: NormalizedVehicle,
    ) -> str:
        self._validate(adapter, vehicle)

        listing = self._get_listing(db, job)
        if listing is not None and listing.idempotency_key == job.idempotency_key:
            # A previous execution of this job already published
            return f"Already published (ID: {listing.external_id})"

        # A timed-out attempt may still complete on the portal; retries resend
        # the same key and rely on the portal deduplicating it
        result = self._call(adapter.publish, vehicle, idempotency_key=job.idempotency_key)

        now = self.clock()
        if listing is None:
            listing = PortalListing(
                tenant_id=job.tenant_id,
                vehicle_id=job.vehicle_id,
                portal_code=job.portal_code,
                created_at=now,
            )
            db.add(listing)

        listing.external_id = result.external_id
        listing.external_url = result.external_url
        listing.status = "published"
        listing.is_active = True
        listing.idempotency_key = job.idempotency_key
        listing.last_sync_at = now
        listing.updated_at = now
        db.flush()

        return f"Published successfully (ID: {result.external_id})"

    def _validate(self, adapter: PortalAdapter, vehicle: NormalizedVehicle) -> None:
        violations = adapter.validate(vehicle)
        if violations:
            raise ValidationError.from_violations(violations)

    def _get_listing(self, db: Session, job: IntegrationJob) -> Optional[PortalListing]:
        return db.query(PortalListing).filter(
            PortalListing.vehicle_id == job.vehicle_id,
            PortalListing.portal_code == job.portal_code,
        ).first()

    def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run one adapter call bounded by WORKER_ADAPTER_TIMEOUT_SECONDS.

        A call that times out keeps running on its thread; its result is
        discarded. The call runs in a copy of the current context so adapter
        log lines keep the job's request id.
        """
        timeout = self.settings.WORKER_ADAPTER_TIMEOUT_SECONDS
        context = contextvars.copy_context()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="adapter-call")
        future = executor.submit(context.run, fn, *args, **kwargs)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            future.cancel()
            raise TransportError(f"Portal call timed out after {timeout}s")
        finally:
            executor.shutdown(wait=False)

    def _record_success(
        self,
        db: Session,
        queue: JobQueue,
        job: IntegrationJob,
        lease_version: int,
        message: str,
    ) -> None:
        job_id = str(job.id)
        tenant_id, vehicle_id = job.tenant_id, job.vehicle_id
        portal_code, job_type = job.portal_code, job.job_type

        if queue.mark_completed(job, lease_version):
            outcome = "completed"
        else:
            outcome = "cancelled"
            message = f"{message} (job was cancelled while in flight)"

        log_integration_event(
            db, tenant_id, portal_code, LEVEL_INFO, message,
            job_id=job_id, vehicle_id=vehicle_id,
        )
        db.commit()

        integration_jobs_total.labels(portal_code=portal_code, job_type=job_type, outcome=outcome).inc()
        logger.info(
            f"Job {job_type} on {portal_code} {outcome}: {message}",
            extra={"job_id": job_id, "tenant_id": str(tenant_id), "portal_code": portal_code}
        )

    def _record_failure(
        self,
        db: Session,
        queue: JobQueue,
        job: IntegrationJob,
        lease_version: int,
        error: IntegrationError,
    ) -> None:
        # Discard partial listing writes from the failed execution
        db.rollback()

        job_id = str(job.id)
        tenant_id, vehicle_id = job.tenant_id, job.vehicle_id
        portal_code, job_type = job.portal_code, job.job_type
        attempts, max_attempts = job.attempts, job.max_attempts

        if isinstance(error, AuthError):
            flagged = CredentialStore(db, self.cipher).mark_needs_reauth(tenant_id, portal_code)
            if flagged:
                portal_reauth_flags_total.labels(portal_code=portal_code, source="worker").inc()

        if error.retryable and attempts < max_attempts:
            attempts += 1
            delay = compute_backoff(
                attempts,
                unit_seconds=self.settings.WORKER_BACKOFF_UNIT_SECONDS,
                max_seconds=self.settings.WORKER_BACKOFF_MAX_SECONDS,
            )
            applied = queue.schedule_retry(job, error, delay, lease_version)
            outcome = "retry"
            message = (
                f"Attempt {attempts}/{max_attempts} failed: {error.message}. "
                f"Retrying in {int(delay.total_seconds())}s"
            )
        else:
            applied = queue.mark_failed(job, error, lease_version)
            outcome = "failed"
            message = f"Failed ({error.kind.value}): {error.message}"

        if not applied:
            outcome = "cancelled"
            message = f"{message} (job was cancelled while in flight)"

        log_integration_event(
            db, tenant_id, portal_code, LEVEL_ERROR, message,
            job_id=job_id, vehicle_id=vehicle_id,
        )
        db.commit()

        integration_jobs_total.labels(portal_code=portal_code, job_type=job_type, outcome=outcome).inc()
        logger.warning(
            f"Job {job_type} on {portal_code} {outcome}: {error.message}",
            extra={"job_id": job_id, "tenant_id": str(tenant_id), "portal_code": portal_code}
        )


def build_integration_worker(
    settings: Optional[Settings] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    worker_id: Optional[str] = None,
) -> IntegrationWorker:
    """Wire a worker with the default registry, cipher and OLX token refresh."""
    # Deferred: database builds its engine from settings at import time
    from database import SessionLocal
    from oauth.service import OAuthExchangeService
    from portals.registry import build_default_registry
    from infrastructure.encryption import get_cipher

    settings = settings or get_settings()
    cipher = get_cipher()
    http_client = httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS)
    olx_oauth = OAuthExchangeService("olx", settings.portal_oauth("olx"), cipher, http_client)

    return IntegrationWorker(
        session_factory=session_factory or SessionLocal,
        registry=build_default_registry(settings),
        cipher=cipher,
        settings=settings,
        token_refreshers={"olx": olx_oauth.refresh_access_token},
        worker_id=worker_id,
    )
