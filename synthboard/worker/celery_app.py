"""Celery application configuration."""

import logging

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from synthboard.core.config import get_settings
from synthboard.core.logging import setup_logging

settings = get_settings()

celery_app = Celery(
    "synthboard",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["synthboard.worker.tasks"],
)

# Loads are long-running; workers take one at a time
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)


@celery_setup_logging.connect
def configure_worker_logging(loglevel=None, **kwargs) -> None:
    """Use structlog in workers instead of Celery's own root logger setup."""
    if isinstance(loglevel, int):
        loglevel = logging.getLevelName(loglevel)
    setup_logging(loglevel)
