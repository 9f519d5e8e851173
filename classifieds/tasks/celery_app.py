"""Celery configuration and beat schedule."""

import logging

from celery import Celery

from classifieds.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "classifieds",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["classifieds.tasks.scheduled_tasks"],
)

sweep_interval = settings.NOTIFICATION_SWEEP_MINUTES * 60

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "expiry-sweep": {
            "task": "classifieds.tasks.scheduled_tasks.expiry_sweep",
            "schedule": sweep_interval,
        },
        "notification-sweep": {
            "task": "classifieds.tasks.scheduled_tasks.notification_sweep",
            "schedule": sweep_interval,
        },
    },
)


@celery_app.on_after_configure.connect
def setup_periodic_tasks(sender, **kwargs):
    logger.info("Celery beat schedule configured: sweeps every %s seconds", sweep_interval)
