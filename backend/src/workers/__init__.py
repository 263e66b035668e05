"""Background processing of integration jobs.

The IntegrationWorker runs either as a long-running process
(scripts/run_integration_worker.py) or one poll at a time from Celery beat
(workers.tasks.poll_integration_jobs).
"""

from .integration_worker import IntegrationWorker, build_integration_worker

__all__ = [
    "IntegrationWorker",
    "build_integration_worker",
]
