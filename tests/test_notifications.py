"""Unit tests for dataroom.jobs.notifications — Change-notification scheduling."""

from unittest.mock import MagicMock, patch

import pytest

from dataroom.engine.config import load_config
from dataroom.engine.errors import DataroomNotificationError
from dataroom.jobs import notifications
from dataroom.jobs.notifications import (
    TASK_NAME,
    ChangeNotificationTrigger,
    get_celery_app,
    register_sender,
    reset_sender,
    send_change_notification,
)


@pytest.fixture(autouse=True)
def _reset_sender():
    yield
    reset_sender()


@pytest.fixture
def celery_app():
    app = MagicMock()
    app.send_task.return_value = MagicMock(id="task-2")
    return app


class TestCeleryApp:
    def test_task_registered(self):
        assert TASK_NAME in get_celery_app().tasks

    def test_notification_route(self):
        routes = get_celery_app().conf.task_routes
        assert routes[TASK_NAME] == {"queue": "notifications"}


class TestTrigger:
    def test_schedules_with_delay(self, mock_redis, celery_app):
        trigger = ChangeNotificationTrigger(redis_client=mock_redis, app=celery_app)

        task_id = trigger.trigger("dr_1", "pl_1", sender_user_id="u_1", team_id="t_1")

        assert task_id == "task-2"
        celery_app.send_task.assert_called_once_with(
            TASK_NAME,
            kwargs={
                "dataroom_id": "dr_1",
                "placement_id": "pl_1",
                "sender_user_id": "u_1",
                "team_id": "t_1",
            },
            countdown=600,
            queue="notifications",
        )
        mock_redis.set.assert_called_once_with("dataroom-notification:dr_1", "task-2", ex=900)
        celery_app.control.revoke.assert_not_called()

    def test_publishes_through_injected_app(self, mock_redis, celery_app):
        trigger = ChangeNotificationTrigger(redis_client=mock_redis, app=celery_app)

        with patch.object(send_change_notification, "apply_async") as module_publish:
            trigger.trigger("dr_1", "pl_1")

        module_publish.assert_not_called()
        assert celery_app.send_task.call_args.args == (TASK_NAME,)
        assert celery_app.send_task.call_args.kwargs["queue"] == "notifications"

    def test_revokes_pending_notification(self, mock_redis, celery_app):
        mock_redis.get.return_value = "task-1"
        trigger = ChangeNotificationTrigger(redis_client=mock_redis, app=celery_app)

        trigger.trigger("dr_1", "pl_2")

        celery_app.control.revoke.assert_called_once_with("task-1")
        mock_redis.get.assert_called_once_with("dataroom-notification:dr_1")

    def test_disabled_by_config(self, tmp_path, mock_redis, celery_app):
        cfg = tmp_path / "dataroom.yaml"
        cfg.write_text("notifications:\n  enabled: false\n", encoding="utf-8")
        load_config(str(cfg))

        trigger = ChangeNotificationTrigger(redis_client=mock_redis, app=celery_app)

        assert trigger.trigger("dr_1", "pl_1") is None
        celery_app.send_task.assert_not_called()

    def test_custom_delay(self, tmp_path, mock_redis, celery_app):
        cfg = tmp_path / "dataroom.yaml"
        cfg.write_text("notifications:\n  delay_seconds: 30\n", encoding="utf-8")
        load_config(str(cfg))

        ChangeNotificationTrigger(redis_client=mock_redis, app=celery_app).trigger("dr_1", "pl_1")

        assert celery_app.send_task.call_args.kwargs["countdown"] == 30

    def test_redis_failure_is_swallowed(self, mock_redis, celery_app):
        mock_redis.get.side_effect = ConnectionError("redis down")
        trigger = ChangeNotificationTrigger(redis_client=mock_redis, app=celery_app)

        assert trigger.trigger("dr_1", "pl_1") is None
        celery_app.send_task.assert_not_called()

    def test_broker_failure_is_swallowed(self, mock_redis, celery_app):
        celery_app.send_task.side_effect = OSError("broker unreachable")
        trigger = ChangeNotificationTrigger(redis_client=mock_redis, app=celery_app)

        assert trigger.trigger("dr_1", "pl_1") is None
        mock_redis.set.assert_not_called()

    def test_pending_key(self):
        assert ChangeNotificationTrigger.pending_key("abc") == "dataroom-notification:abc"


class TestTask:
    def test_sends_payload(self, tree):
        dr = tree.dataroom("Board Room", team_id="team_3")
        placement = tree.place(dr, "Minutes.pdf", hierarchical_index="1")
        sent = []
        register_sender(sent.append)

        result = send_change_notification(dr, placement, sender_user_id="u_9")

        assert result == {"status": "sent", "dataroom_id": dr, "placement_id": placement}
        assert len(sent) == 1
        payload = sent[0]
        assert payload["dataroom_name"] == "Board Room"
        assert payload["team_id"] == "team_3"
        assert payload["document_name"] == "Minutes.pdf"
        assert payload["hierarchical_index"] == "1"
        assert payload["sender_user_id"] == "u_9"

    def test_skips_missing_placement(self, tree):
        dr = tree.dataroom()
        sent = []
        register_sender(sent.append)

        result = send_change_notification(dr, "gone")

        assert result["status"] == "skipped"
        assert sent == []

    def test_sender_failure_raises(self, tree):
        dr = tree.dataroom()
        placement = tree.place(dr, "x.pdf")

        def broken(payload):
            raise RuntimeError("smtp down")

        register_sender(broken)
        with pytest.raises(DataroomNotificationError):
            send_change_notification(dr, placement)

    def test_default_sender_logs(self, tree, caplog):
        dr = tree.dataroom()
        placement = tree.place(dr, "Report.pdf")
        with caplog.at_level("INFO", logger="dataroom.jobs.notifications"):
            send_change_notification(dr, placement)
        assert "Report.pdf" in caplog.text

    def test_register_rejects_non_callable(self):
        with pytest.raises(DataroomNotificationError):
            register_sender("not a function")

    def test_module_trigger_singleton(self):
        assert notifications.get_notification_trigger() is notifications.get_notification_trigger()
