"""Notification preference store with an explicit read/write/subscribe contract.

The toggle and the toast center share one `NotificationSettings` instance
instead of polling storage: writes persist through `PreferenceDB` and are
pushed to subscribers immediately.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from crmsync.data.db import PreferenceDB

logger = logging.getLogger(__name__)

NOTIFICATIONS_ENABLED_KEY = "notificationsEnabled"

Subscriber = Callable[[bool], None]


class NotificationSettings:
    """Durable notifications-enabled flag. Defaults to enabled when unset."""

    def __init__(self, db: PreferenceDB | None = None, user_id: str = "default") -> None:
        self._db = db
        self._user_id = user_id
        self._subscribers: list[Subscriber] = []
        self._enabled = self._read()

    def _read(self) -> bool:
        if self._db is None:
            return True
        value = self._db.get(self._user_id, NOTIFICATIONS_ENABLED_KEY)
        return value is None or value == "true"

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        if self._db is not None:
            self._db.set(
                self._user_id, NOTIFICATIONS_ENABLED_KEY, "true" if enabled else "false",
            )
        if enabled == self._enabled:
            return
        self._enabled = enabled
        for subscriber in list(self._subscribers):
            try:
                subscriber(enabled)
            except Exception as exc:
                logger.error("Notification setting subscriber failed: %s", exc)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe
