"""Celery app configuration."""

from celery import Celery

from kbchat.core.config import settings

celery_app = Celery(
    "kbchat.worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["kbchat.worker.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_hijack_root_logger=False,
    beat_schedule={
        "requeue-stale-documents": {
            "task": "requeue_stale_documents",
            # Every five minutes
            "schedule": 300.0,
        },
    },
)
