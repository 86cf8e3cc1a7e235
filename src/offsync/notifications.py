"""Push notification plumbing.

A push message carries a :class:`~offsync.models.PushPayload`
(``title``, ``body``, ``url``). :func:`build_notification` turns it into a
:class:`~offsync.models.Notification` with the app's icon, badge and the
``open``/``close`` actions, and a :class:`Notifier` displays it. Clicking a
notification is handled by :meth:`~offsync.worker.OfflineWorker.handle_notification_click`.
"""

from __future__ import annotations

import logging
from typing import Protocol

from offsync.models import EngineConfig, Notification, NotificationAction, PushPayload

logger = logging.getLogger(__name__)

DEFAULT_BODY = "New notification"


class Notifier(Protocol):
    def show(self, notification: Notification) -> None: ...


class LogNotifier:
    """Notifier that records notifications and writes them to the log."""

    def __init__(self) -> None:
        self.shown: list[Notification] = []

    def show(self, notification: Notification) -> None:
        self.shown.append(notification)
        logger.info("Notification: %s - %s", notification.title, notification.body)


def build_notification(payload: PushPayload, config: EngineConfig) -> Notification:
    return Notification(
        title=payload.title or config.app_name,
        body=payload.body or DEFAULT_BODY,
        icon=config.notification_icon,
        badge=config.notification_badge,
        data={"url": payload.url or "/"},
        actions=[
            NotificationAction(action="open", title="Open"),
            NotificationAction(action="close", title="Close"),
        ],
    )
