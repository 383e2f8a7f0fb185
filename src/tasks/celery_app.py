"""Celery configuration.

Usage:
    # Start worker
    celery -A src.tasks.celery_app worker -Q escrow -l info

    # Start beat scheduler
    celery -A src.tasks.celery_app beat -l info
"""

import logging

from celery import Celery
from celery.schedules import crontab
from celery.signals import after_setup_logger

from src.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "escrow_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "src.tasks.escrow",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    task_routes={
        "escrow.*": {"queue": "escrow"},
    },
    beat_schedule={
        "release-matured-escrows": {
            "task": "escrow.release_matured",
            "schedule": crontab(minute=0),  # top of every hour
        },
        "recover-stalled-payments": {
            "task": "escrow.recover_stalled_payments",
            "schedule": crontab(minute="*/15"),
        },
    },
)


@after_setup_logger.connect
def _configure_worker_logging(logger: logging.Logger, **kwargs) -> None:
    logger.setLevel(settings.log_level)
