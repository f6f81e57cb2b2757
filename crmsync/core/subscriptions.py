"""
CRM Sync — Event Subscription Registry.

Listener table for the real-time channel. Each consumer (a store, the toast
center, a view) holds at most one callback per event name; registering again
replaces the previous callback instead of stacking a duplicate. The
connection manager forwards every inbound event to `dispatch()`.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]

DEFAULT_CONSUMER = "default"


class SubscriptionRegistry:
    """Map of consumer -> event name -> the single active callback."""

    def __init__(self) -> None:
        self._consumers: dict[str, dict[str, Handler]] = {}

    def register(
        self,
        event: str,
        callback: Handler,
        consumer: str = DEFAULT_CONSUMER,
    ) -> Callable[[], None]:
        """Attach `callback` for `event`, detaching any previous one first.

        Returns a closure that detaches exactly this callback. If the
        callback was already replaced, calling the closure does nothing.
        """
        handlers = self._consumers.setdefault(consumer, {})
        previous = handlers.pop(event, None)
        if previous is not None:
            logger.debug("Replacing '%s' handler for consumer '%s'", event, consumer)
        handlers[event] = callback

        def unregister() -> None:
            current = self._consumers.get(consumer)
            if current is None or current.get(event) is not callback:
                return
            del current[event]
            if not current:
                del self._consumers[consumer]

        return unregister

    def unregister(self, event: str, consumer: str = DEFAULT_CONSUMER) -> None:
        handlers = self._consumers.get(consumer)
        if handlers is None:
            return
        handlers.pop(event, None)
        if not handlers:
            del self._consumers[consumer]

    def release(self, consumer: str) -> int:
        """Detach every callback a consumer registered. Returns the count."""
        handlers = self._consumers.pop(consumer, {})
        if handlers:
            logger.debug("Released %d handler(s) for '%s'", len(handlers), consumer)
        return len(handlers)

    def release_all(self) -> int:
        """Detach every tracked (event, callback) pair and clear the table."""
        count = sum(len(h) for h in self._consumers.values())
        self._consumers.clear()
        if count:
            logger.info("Released all %d real-time handler(s)", count)
        return count

    def handlers_for(self, event: str) -> list[Handler]:
        return [
            handlers[event]
            for handlers in self._consumers.values()
            if event in handlers
        ]

    def events(self) -> set[str]:
        return {event for handlers in self._consumers.values() for event in handlers}

    def scope(self, consumer: str) -> SubscriptionScope:
        return SubscriptionScope(self, consumer)

    def __len__(self) -> int:
        return sum(len(h) for h in self._consumers.values())

    async def dispatch(self, event: str, *args: Any) -> int:
        """Invoke every active callback for `event`. Returns how many ran.

        A failing callback is logged and does not stop the others.
        """
        fired = 0
        # Snapshot: callbacks may (un)register while we iterate.
        for callback in self.handlers_for(event):
            fired += 1
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("Handler for '%s' failed: %s", event, exc)
        return fired


class SubscriptionScope:
    """Registrations owned by one consumer, released together.

    Usage:
        with registry.scope("tasks-view") as scope:
            scope.on("task-created", handle_created)
            ...
        # every handler registered above is detached here
    """

    def __init__(self, registry: SubscriptionRegistry, consumer: str) -> None:
        self._registry = registry
        self.consumer = consumer

    def on(self, event: str, callback: Handler) -> Callable[[], None]:
        return self._registry.register(event, callback, consumer=self.consumer)

    def close(self) -> None:
        self._registry.release(self.consumer)

    def __enter__(self) -> SubscriptionScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
