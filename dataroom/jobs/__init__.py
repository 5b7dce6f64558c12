"""Dataroom background jobs — Celery-based change notifications."""

from dataroom.jobs.notifications import (  # noqa: F401
    ChangeNotificationTrigger,
    get_celery_app,
    get_notification_trigger,
    init_celery,
    register_sender,
    send_change_notification,
)

__all__ = [
    "ChangeNotificationTrigger",
    "get_celery_app",
    "get_notification_trigger",
    "init_celery",
    "register_sender",
    "send_change_notification",
]
