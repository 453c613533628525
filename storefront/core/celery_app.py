from __future__ import annotations

from celery import Celery
from kombu import Queue

from storefront.core.config import settings


celery_app = Celery("storefront")

celery_app.conf.update(
    broker_url=settings.CELERY_BROKER_URL,
    result_backend=settings.CELERY_RESULT_BACKEND,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_eager_propagates=True,
    task_default_queue=settings.CELERY_TASK_DEFAULT_QUEUE,
    broker_connection_retry_on_startup=True,
)

celery_app.conf.task_queues = (
    Queue(settings.CELERY_TASK_DEFAULT_QUEUE),
    Queue(settings.CARTS_QUEUE),
)

celery_app.conf.task_routes = {
    "carts.*": {"queue": settings.CARTS_QUEUE},
}

celery_app.conf.beat_schedule = {
    "expire-stale-carts": {
        "task": "carts.expire_stale",
        "schedule": 3600.0,
    },
}

celery_app.autodiscover_tasks(["storefront"])
