"""Celery application factory"""
from celery import Celery

from therapy_booking.config.settings import get_settings


def create_celery_app() -> Celery:
    settings = get_settings()

    app = Celery(
        "therapy_booking",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=["therapy_booking.tasks.reconciliation_tasks"],
    )
    app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_acks_late=True,
        beat_schedule={
            "scan-unrefunded-cancellations": {
                "task": "therapy_booking.tasks.reconciliation_tasks.scan_unrefunded_cancellations",
                "schedule": settings.RECONCILIATION_INTERVAL_MINUTES * 60,
            },
        },
    )
    return app


celery_app = create_celery_app()
