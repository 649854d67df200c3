from celery import Celery
from notifyhub.core.config import settings

celery = Celery(
    "notify-worker",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=["worker.tasks"],
)

celery.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "worker.tasks.drain_notification_outbox": {"queue": "outbox"},
    },
    # The drain owns no timer; beat is the external scheduler (run `celery -A worker.celery_app beat`)
    beat_schedule={
        "drain-notification-outbox": {
            "task": "worker.tasks.drain_notification_outbox",
            "schedule": settings.drain_interval_seconds,
            "kwargs": {"limit": settings.drain_default_limit},
            "options": {"queue": "outbox", "expires": settings.drain_interval_seconds},
        },
    },
)
