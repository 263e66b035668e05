"""Celery tasks for integration job polling.

Tasks:
- poll_integration_jobs: one worker poll per beat tick (integrations.poll)
"""

import logging
from typing import Any, Dict, Optional

from celery import shared_task

from portals.errors import SystemicError
from .integration_worker import IntegrationWorker, build_integration_worker

logger = logging.getLogger(__name__)

_worker: Optional[IntegrationWorker] = None


def _get_worker() -> IntegrationWorker:
    global _worker
    if _worker is None:
        _worker = build_integration_worker()
    return _worker


@shared_task(name="integrations.poll", bind=True)
def poll_integration_jobs(self, max_jobs: int = 1) -> Dict[str, Any]:
    """Execute up to max_jobs integration jobs.

    A SystemicError is reported in the result instead of being retried.
    The cached worker latches it, so later ticks report the halt without
    polling storage until the process is restarted.

    Returns:
        Dict with:
        - status: "ok" or "halted"
        - processed: Number of jobs claimed
        - error: Systemic error message when halted
    """
    worker = _get_worker()
    if worker.halted_by is not None:
        logger.warning(f"Integration poll skipped, worker halted: {worker.halted_by.message}")
        return {"status": "halted", "processed": 0, "error": worker.halted_by.message}

    processed = 0

    try:
        for _ in range(max_jobs):
            if not worker.poll_once():
                break
            processed += 1
    except SystemicError as e:
        logger.error(f"Integration poll halted by systemic failure: {e.message}")
        return {"status": "halted", "processed": processed, "error": e.message}

    if processed:
        logger.info(f"Integration poll processed {processed} job(s)")
    return {"status": "ok", "processed": processed}
