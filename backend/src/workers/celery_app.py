"""Celery application for the scheduled-poll deployment.

Instead of a long-running worker process, Celery beat can trigger one poll
per tick. Run with:

    celery -A workers.celery_app worker --beat --loglevel=info
"""

from celery import Celery

from config import get_settings

settings = get_settings()

celery_app = Celery(
    "listingsync",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # A poll that misses its tick is superseded by the next one
    task_acks_late=False,
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    "integrations-poll": {
        "task": "integrations.poll",
        "schedule": settings.WORKER_POLL_INTERVAL_SECONDS,
        "options": {
            "expires": max(settings.WORKER_POLL_INTERVAL_SECONDS * 2, 1),
        },
    },
}
