"""Worker package for Celery tasks."""

from kbchat.worker.celery_app import celery_app

__all__ = ["celery_app"]
