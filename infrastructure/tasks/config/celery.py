"""Celery application configuration"""
from __future__ import annotations

from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger
from .beat import CELERY_BEAT_SCHEDULE


CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)


celery_app = Celery("artisan_market")

celery_app.conf.update(
    # the cache Redis doubles as broker when no dedicated one is configured
    broker_url=settings.celery.broker_url or settings.redis.url,
    result_backend=settings.celery.result_backend or settings.celery.broker_url or settings.redis.url,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.celery.timezone,
    enable_utc=True,
    # ack after the work is done so a lost worker gets the task redelivered
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue=settings.celery.default_queue,
    task_default_retry_delay=5,
    task_queues=(
        Queue("high"),
        Queue("default"),
        Queue("low"),
    ),
    task_routes={
        "messaging.*": {"queue": "high"},
        "escrow.*": {"queue": "default"},
        "housekeeping.*": {"queue": "low"},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = CELERY_IMPORTS

if settings.celery.task_always_eager:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info("celery_configured", broker=sender.conf.broker_url, result_backend=sender.conf.result_backend)
