"""
CRM Sync — Notification toasts.

Shows server `notification` events as short-lived toasts: at most a handful
on screen, newest first, each removed on its own after a few seconds. A click
dismisses the toast and hands the notification to the navigation
coordinator. Toasts can also be relayed to a chat through a NotificationPort.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from crmsync.core.navigation import NavigationCoordinator
    from crmsync.core.preferences import NotificationSettings
    from crmsync.data.models import Notification
    from crmsync.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


def toast_icon(notification_type: str) -> str:
    if notification_type.startswith("contact"):
        return "👤"
    if notification_type.startswith("subtask"):
        return "📝"
    if notification_type.startswith("task"):
        return "✅"
    return "🔔"


def toast_tone(notification_type: str) -> str:
    """Color class for a notification type such as `task_completed`."""
    if "created" in notification_type or "completed" in notification_type:
        return "success"
    if "deleted" in notification_type:
        return "danger"
    if "assigned" in notification_type:
        return "info"
    return "default"


def format_toast(notification: Notification) -> str:
    icon = toast_icon(notification.type)
    if notification.message:
        return f"{icon} {notification.title}\n{notification.message}"
    return f"{icon} {notification.title}"


@dataclass
class Toast:
    id: str
    notification: Notification
    icon: str
    tone: str
    expires_at: float
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)


class ToastCenter:
    """The visible toast stack."""

    def __init__(
        self,
        settings: NotificationSettings | None = None,
        coordinator: NavigationCoordinator | None = None,
        limit: int = 5,
        duration: float = 5.0,
        notifier: NotificationPort | None = None,
        chat_id: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._coordinator = coordinator
        self.limit = limit
        self.duration = duration
        self._notifier = notifier
        self._chat_id = chat_id
        self._clock = clock
        self._toasts: list[Toast] = []
        if settings is not None:
            settings.subscribe(self._on_enabled_changed)

    @property
    def enabled(self) -> bool:
        return self._settings is None or self._settings.enabled

    @property
    def toasts(self) -> list[Toast]:
        """Visible toasts, newest first."""
        now = self._clock()
        for toast in [t for t in self._toasts if t.expires_at <= now]:
            self.dismiss(toast.id)
        return list(self._toasts)

    def add(self, notification: Notification) -> Toast | None:
        """Show a toast. Returns None if skipped (disabled or duplicate)."""
        if not self.enabled:
            logger.debug("Notifications disabled, skipping toast")
            return None

        toast_id = notification.id or uuid.uuid4().hex
        if any(t.id == toast_id for t in self._toasts):
            return None

        toast = Toast(
            id=toast_id,
            notification=notification,
            icon=toast_icon(notification.type),
            tone=toast_tone(notification.type),
            expires_at=self._clock() + self.duration,
        )
        self._toasts.insert(0, toast)
        for dropped in self._toasts[self.limit:]:
            self._cancel(dropped)
        del self._toasts[self.limit:]

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            toast._timer = loop.call_later(self.duration, self.dismiss, toast_id)
        return toast

    async def receive(self, notification: Notification) -> Toast | None:
        """Add a toast and relay it to the configured chat, if any."""
        toast = self.add(notification)
        if toast is None or self._notifier is None or not self._chat_id:
            return toast
        try:
            await self._notifier.send_message(self._chat_id, format_toast(notification))
        except Exception as exc:
            logger.error("Failed to relay notification %s: %s", toast.id, exc)
        return toast

    def dismiss(self, toast_id: str) -> bool:
        for toast in self._toasts:
            if toast.id == toast_id:
                self._cancel(toast)
                self._toasts.remove(toast)
                return True
        return False

    def click(self, toast_id: str) -> bool:
        """Dismiss a toast and navigate to what it refers to."""
        toast = next((t for t in self._toasts if t.id == toast_id), None)
        if toast is None:
            return False
        self.dismiss(toast_id)
        if self._coordinator is not None:
            self._coordinator.handle_notification_click(toast.notification)
        return True

    def clear(self) -> None:
        for toast in self._toasts:
            self._cancel(toast)
        self._toasts.clear()

    def _on_enabled_changed(self, enabled: bool) -> None:
        if not enabled:
            self.clear()

    @staticmethod
    def _cancel(toast: Toast) -> None:
        if toast._timer is not None:
            toast._timer.cancel()
            toast._timer = None
