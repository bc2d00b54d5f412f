import requests
from fastapi import BackgroundTasks

import config
import notifications
from notifications import Notifier, send_push


class FakeResponse:
    status_code = 200

    def raise_for_status(self):
        pass


def test_unconfigured_gateway_drops_message(monkeypatch):
    monkeypatch.setattr(config, "PUSH_GATEWAY_URL", "")
    assert send_push("token", "Title", "Body")["success"] is False


def test_send_push_posts_string_data(monkeypatch):
    calls = []

    def fake_post(url, json, headers, timeout):
        calls.append({"url": url, "json": json, "headers": headers})
        return FakeResponse()

    monkeypatch.setattr(config, "PUSH_GATEWAY_URL", "https://push.test/send")
    monkeypatch.setattr(config, "PUSH_GATEWAY_KEY", "k")
    monkeypatch.setattr(notifications.requests, "post", fake_post)

    result = send_push("token", "Hi", "There", {"count": 3})

    assert result["success"] is True
    assert calls[0]["json"]["data"] == {"count": "3"}
    assert calls[0]["headers"]["Authorization"] == "Bearer k"


def test_gateway_errors_are_swallowed(monkeypatch):
    def broken_post(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(config, "PUSH_GATEWAY_URL", "https://push.test/send")
    monkeypatch.setattr(notifications.requests, "post", broken_post)

    assert send_push("token", "Hi", "There")["success"] is False
    assert send_push("", "Hi", "There")["message"] == "Device token is required"


def test_notifier_queues_on_background_tasks(sender):
    tasks = BackgroundTasks()
    notifier = Notifier(tasks, sender=sender)

    assert notifier.notify({"deviceToken": "t"}, "Hi", "There") is True
    assert notifier.notify({"name": "no token"}, "Hi", "There") is False
    assert sender.sent == []
    assert len(tasks.tasks) == 1
