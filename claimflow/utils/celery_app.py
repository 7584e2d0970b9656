"""
Celery Application
Background claim processing and the periodic status refresh
Source: https://docs.celeryq.dev/en/stable/getting-started/first-steps-with-celery.html
Verified: 2026-10-19
"""

from celery import Celery

from claimflow.api.config import settings

celery_app = Celery(
    "claimflow",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Periodic refresh of claims awaiting a payer outcome
# Source: https://docs.celeryq.dev/en/stable/userguide/periodic-tasks.html
celery_app.conf.beat_schedule = {
    "refresh-open-claims": {
        "task": "claims.refresh_open_claims",
        "schedule": settings.CLAIM_REFRESH_INTERVAL_MINUTES * 60.0,
    },
}

# Tasks live in claimflow/tasks/claims.py
celery_app.autodiscover_tasks(["claimflow.tasks"], related_name="claims")
