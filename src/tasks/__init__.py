"""Escrow Settlement Tasks Module."""

from src.tasks.celery_app import celery_app
from src.tasks.escrow import recover_stalled_payments, release_matured_escrows, trigger_release

__all__ = [
    "celery_app",
    "release_matured_escrows",
    "trigger_release",
    "recover_stalled_payments",
]
