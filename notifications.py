import logging
from typing import Any, Callable, Dict, Optional

import requests
from fastapi import BackgroundTasks

import config

log = logging.getLogger("matchmaking.notifications")

Sender = Callable[[str, str, str, Optional[Dict[str, Any]]], Dict[str, Any]]


def send_push(device_token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Deliver one push message through the gateway. Never raises."""
    if not device_token:
        return {"success": False, "message": "Device token is required"}
    if not title or not body:
        return {"success": False, "message": "Notification title and body are required"}
    if not config.PUSH_GATEWAY_URL:
        log.info("Push gateway not configured, dropping notification %r", title)
        return {"success": False, "message": "Push gateway not configured"}

    message = {
        "token": device_token,
        "notification": {"title": title, "body": body},
        # data payload values must be strings
        "data": {k: str(v) for k, v in (data or {}).items()},
        "android": {
            "priority": "high",
            "notification": {"sound": "default", "clickAction": "FLUTTER_NOTIFICATION_CLICK"},
        },
        "apns": {"payload": {"aps": {"sound": "default", "badge": 1}}},
    }
    headers = {}
    if config.PUSH_GATEWAY_KEY:
        headers["Authorization"] = f"Bearer {config.PUSH_GATEWAY_KEY}"

    try:
        resp = requests.post(config.PUSH_GATEWAY_URL, json=message, headers=headers,
                             timeout=config.PUSH_TIMEOUT_SEC)
        resp.raise_for_status()
    except requests.RequestException as e:
        log.warning("Error sending notification %r: %s", title, e)
        return {"success": False, "message": "Failed to send notification", "error": str(e)}

    log.info("Notification %r sent", title)
    return {"success": True, "message": "Notification sent successfully", "statusCode": resp.status_code}


class Notifier:
    """
    Queues push messages for delivery after the response has been sent.

    Without a BackgroundTasks instance messages go out inline, which is what
    scripts and tests use.
    """

    def __init__(self, background_tasks: Optional[BackgroundTasks] = None, sender: Sender = send_push):
        self.background_tasks = background_tasks
        self.sender = sender

    def notify(self, user: Optional[dict], title: str, body: str, data: Optional[Dict[str, Any]] = None) -> bool:
        token = (user or {}).get("deviceToken")
        if not token:
            return False
        if self.background_tasks is not None:
            self.background_tasks.add_task(self.sender, token, title, body, data)
        else:
            self.sender(token, title, body, data)
        return True
