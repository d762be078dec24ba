"""Celery application factory for background notification tasks."""
from __future__ import annotations

import os
from celery import Celery
from celery.schedules import crontab

DEFAULT_BROKER_URL = os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))
DEFAULT_BACKEND_URL = os.getenv("CELERY_RESULT_BACKEND", DEFAULT_BROKER_URL)
EVALUATION_MINUTES = int(os.getenv("NOTIFY_EVALUATION_MINUTES", "15"))


def create_celery_app() -> Celery:
    """Create and configure the Celery app for the project."""
    celery_app = Celery(
        "habit_notifications",
        broker=DEFAULT_BROKER_URL,
        backend=DEFAULT_BACKEND_URL,
        include=["habit_notifications.tasks"],
    )

    celery_app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone=os.getenv("CELERY_TIMEZONE", "UTC"),
        enable_utc=True,
        beat_schedule={
            "evaluate-notification-strategies": {
                "task": "habit_notifications.tasks.evaluate_notifications",
                "schedule": crontab(minute=f"*/{EVALUATION_MINUTES}"),
            },
        },
    )

    return celery_app


celery_app = create_celery_app()
