"""
Dataroom change notifications — delayed Celery job after document uploads.

When a document is added to a dataroom with change notifications enabled,
a ``dataroom.send_change_notification`` task is scheduled with a delay
(10 minutes by default). A newer upload to the same dataroom revokes the
pending task and schedules a fresh one, so viewers get one notification per
burst of uploads. The pending task id lives in Redis.

Scheduling is fire-and-forget: broker or Redis failures are logged and never
fail the tree mutation that triggered them.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import redis
from celery import Celery

from dataroom.engine.config import get_config
from dataroom.engine.errors import DataroomNotificationError
from dataroom.engine.logging import log, log_notification

logger = logging.getLogger("dataroom.jobs.notifications")

TASK_NAME = "dataroom.send_change_notification"
PENDING_KEY_PREFIX = "dataroom-notification:"


# ---------------------------------------------------------------------------
# Celery app (configured from dataroom.yaml)
# ---------------------------------------------------------------------------

_celery_app: Optional[Celery] = None


def get_celery_app() -> Celery:
    """Get or create the Celery app singleton."""
    global _celery_app
    if _celery_app is None:
        _celery_app = _create_celery_app()
    return _celery_app


def _create_celery_app() -> Celery:
    config = get_config()
    app = Celery("dataroom", broker=config.celery.broker, backend=config.celery.result_backend)
    app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_default_queue="celery",
        task_routes={TASK_NAME: {"queue": config.notifications.queue}},
        task_acks_late=True,
        worker_prefetch_multiplier=1,
    )
    return app


def init_celery(broker: Optional[str] = None, backend: Optional[str] = None) -> Celery:
    """
    Apply broker/backend overrides to the Celery app.

    Args:
        broker: Redis broker URL. Defaults to config.
        backend: Redis result backend URL. Defaults to config.
    """
    app = get_celery_app()
    if broker:
        app.conf.broker_url = broker
    if backend:
        app.conf.result_backend = backend
    return app


# ---------------------------------------------------------------------------
# Senders
# ---------------------------------------------------------------------------

NotificationSender = Callable[[Dict[str, Any]], None]


def _log_sender(payload: Dict[str, Any]) -> None:
    logger.info(
        f"Change notification for dataroom {payload['dataroom_id']}: "
        f"document '{payload['document_name']}' added"
    )


_sender: NotificationSender = _log_sender


def register_sender(sender: NotificationSender) -> None:
    """Replace the delivery function (email, webhook...) used by the task."""
    global _sender
    if not callable(sender):
        raise DataroomNotificationError(f"Notification sender must be callable, got {type(sender).__name__}")
    _sender = sender


def reset_sender() -> None:
    global _sender
    _sender = _log_sender


def build_payload(
    dataroom_id: str,
    placement_id: str,
    sender_user_id: Optional[str] = None,
    team_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Load what a notification needs. None when the dataroom or placement is gone."""
    from dataroom.db.models import Dataroom, DataroomDocument
    from dataroom.db.session import session_scope

    with session_scope(_worker_session_factory()) as session:
        dataroom = session.get(Dataroom, dataroom_id)
        placement = session.get(DataroomDocument, placement_id)
        if dataroom is None or placement is None or placement.dataroom_id != dataroom_id:
            return None
        return {
            "dataroom_id": dataroom.id,
            "dataroom_name": dataroom.name,
            "team_id": team_id or dataroom.team_id,
            "placement_id": placement.id,
            "document_id": placement.document_id,
            "document_name": placement.document.name,
            "hierarchical_index": placement.hierarchical_index,
            "sender_user_id": sender_user_id,
        }


def _worker_session_factory():
    from dataroom.db.session import get_session_factory, init_db

    try:
        return get_session_factory()
    except RuntimeError:
        db = get_config().database
        return init_db(
            db.url,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            pool_pre_ping=db.pool_pre_ping,
        )


# ---------------------------------------------------------------------------
# Celery task
# ---------------------------------------------------------------------------

celery_app = get_celery_app()


@celery_app.task(name=TASK_NAME)
def send_change_notification(
    dataroom_id: str,
    placement_id: str,
    sender_user_id: Optional[str] = None,
    team_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Celery task: deliver one change notification for a dataroom.

    Scheduled by ChangeNotificationTrigger with a countdown.
    """
    payload = build_payload(dataroom_id, placement_id, sender_user_id, team_id)
    if payload is None:
        logger.info(f"Skipping notification: dataroom {dataroom_id} / placement {placement_id} gone")
        return {"status": "skipped", "dataroom_id": dataroom_id}

    try:
        _sender(payload)
    except Exception as e:
        log(log_notification(dataroom_id, "failed", error=str(e)))
        raise DataroomNotificationError(
            f"Failed to send change notification: {e}",
            dataroom_id=dataroom_id,
            operation="send_change_notification",
        ) from e

    log(log_notification(dataroom_id, "sent"))
    return {"status": "sent", "dataroom_id": dataroom_id, "placement_id": placement_id}


# ---------------------------------------------------------------------------
# Trigger
# ---------------------------------------------------------------------------

class ChangeNotificationTrigger:
    """
    Debounced scheduling of change notifications per dataroom.

    Callers check the dataroom's ``enable_change_notifications`` flag; the
    trigger honours the global ``notifications.enabled`` switch.

    Usage:
        trigger = ChangeNotificationTrigger()
        trigger.trigger(dataroom_id, placement_id, sender_user_id=user_id)
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, app: Optional[Celery] = None):
        self._redis = redis_client
        self._app = app

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.Redis.from_url(
                get_config().redis.url,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
        return self._redis

    @staticmethod
    def pending_key(dataroom_id: str) -> str:
        return f"{PENDING_KEY_PREFIX}{dataroom_id}"

    def trigger(
        self,
        dataroom_id: str,
        placement_id: str,
        sender_user_id: Optional[str] = None,
        team_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Revoke the pending notification for this dataroom and schedule a new one.

        Returns:
            The new task id, or None when disabled or scheduling failed.
        """
        cfg = get_config().notifications
        if not cfg.enabled:
            return None

        app = self._app or get_celery_app()
        key = self.pending_key(dataroom_id)
        try:
            client = self._client()
            previous = client.get(key)
            if previous:
                app.control.revoke(previous)
                log(log_notification(dataroom_id, "revoked", task_id=previous))
                logger.debug(f"Revoked pending notification {previous} for dataroom {dataroom_id}")

            result = app.send_task(
                TASK_NAME,
                kwargs={
                    "dataroom_id": dataroom_id,
                    "placement_id": placement_id,
                    "sender_user_id": sender_user_id,
                    "team_id": team_id,
                },
                countdown=cfg.delay_seconds,
                queue=cfg.queue,
            )
            client.set(key, result.id, ex=cfg.pending_key_ttl)
        except Exception as e:
            logger.warning(f"Could not schedule change notification for dataroom {dataroom_id}: {e}")
            log(log_notification(dataroom_id, "failed", error=str(e)))
            return None

        log(log_notification(dataroom_id, "scheduled", task_id=result.id))
        logger.info(
            f"Scheduled change notification {result.id} for dataroom {dataroom_id} "
            f"in {cfg.delay_seconds}s"
        )
        return result.id


_trigger: Optional[ChangeNotificationTrigger] = None


def get_notification_trigger() -> ChangeNotificationTrigger:
    global _trigger
    if _trigger is None:
        _trigger = ChangeNotificationTrigger()
    return _trigger
