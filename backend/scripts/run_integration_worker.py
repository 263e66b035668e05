#!/usr/bin/env python
"""Run the integration worker as a long-running process.

Polls the integration job queue until SIGINT/SIGTERM or until a systemic
storage failure halts it (exit code 2). Exits with code 1 without polling
when the database is unreachable at startup.

Usage:
    python backend/scripts/run_integration_worker.py [--worker-id NAME]

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    TOKEN_ENCRYPTION_SECRET: Secret for portal token encryption (required)
    WORKER_POLL_INTERVAL_SECONDS: Sleep between empty polls (default 3)
"""

import argparse
import signal
import sys
from pathlib import Path

# Add backend/src to Python path
backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from config import get_settings
from database import get_db_session
from observability.health import HealthStatus, check_database_health
from observability.logging_config import configure_logging, get_logger
from workers.integration_worker import build_integration_worker

logger = get_logger("run_integration_worker")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the ListingSync integration worker")
    parser.add_argument("--worker-id", default=None, help="Identifier recorded on claimed jobs")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    with get_db_session() as session:
        db_health = check_database_health(session)
    if db_health.status != HealthStatus.HEALTHY:
        logger.critical(f"Database unavailable, not starting worker: {db_health.message}")
        return 1

    worker = build_integration_worker(settings, worker_id=args.worker_id)

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, stopping worker")
        worker.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    worker.run()

    if worker.halted_by is not None:
        logger.critical(f"Worker halted: {worker.halted_by.message}")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
