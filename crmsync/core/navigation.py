"""
CRM Sync — Navigation and highlight coordination.

Three independent triggers can ask the app to open a specific contact or
task: a deep link present at load time (possibly before login), a click on an
in-app notification toast, and a click on a push notification relayed from
the platform while the app was in the background. All three resolve to the
same two intent shapes and go through `NavigationCoordinator.apply()`, so they
cannot race each other into inconsistent state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Mapping
from urllib.parse import parse_qsl, urlsplit

from crmsync.core.tree import subtask_path

if TYPE_CHECKING:
    from crmsync.core.reconciler import CrmStore
    from crmsync.data.models import Notification
    from crmsync.ports.navigator_port import Navigator

logger = logging.getLogger(__name__)

CRM_ROUTE = "/crm"
TASKS_ROUTE = "/tasks"

PENDING_DEEP_LINK_KEY = "pendingDeepLink"
NOTIFICATION_CLICK = "NOTIFICATION_CLICK"

# Deep-link query parameters
EXPAND_CONTACT_PARAM = "expandContact"
HIGHLIGHT_TASK_PARAM = "highlightTask"
HIGHLIGHT_SUBTASK_PARAM = "highlightSubtask"

# Keys inside a notification's `data` object
CONTACT_ID_KEY = "contactId"
TASK_ID_KEY = "taskId"
SUBTASK_ID_KEY = "subtaskId"


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContactIntent:
    """Open the CRM page with one contact expanded."""

    expand_contact_id: str
    route: ClassVar[str] = CRM_ROUTE


@dataclass(frozen=True)
class TaskIntent:
    """Open the task page with a task (and optionally a subtask) highlighted."""

    highlight_task_id: str
    highlight_subtask_id: str | None = None
    route: ClassVar[str] = TASKS_ROUTE


NavigationIntent = ContactIntent | TaskIntent


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def intent_from_query(
    params: Mapping[str, Any],
    data: Mapping[str, Any] | None = None,
    prefer_contact: bool = False,
) -> NavigationIntent | None:
    """Resolve deep-link query parameters, falling back to `data` keys."""
    contact_id = _clean(params.get(EXPAND_CONTACT_PARAM))
    task_id = _clean(params.get(HIGHLIGHT_TASK_PARAM))
    subtask_id = _clean(params.get(HIGHLIGHT_SUBTASK_PARAM))

    if contact_id is None and task_id is None and data:
        contact_id = _clean(data.get(CONTACT_ID_KEY))
        task_id = _clean(data.get(TASK_ID_KEY))
        subtask_id = _clean(data.get(SUBTASK_ID_KEY))

    if contact_id and (prefer_contact or task_id is None):
        return ContactIntent(contact_id)
    if task_id:
        return TaskIntent(task_id, subtask_id)
    return None


def intent_from_notification(notification: Notification) -> NavigationIntent | None:
    """Where a click on an in-app notification should lead."""
    data = notification.data or {}
    related = notification.related_type
    if related == "contact":
        contact_id = _clean(data.get(CONTACT_ID_KEY))
        return ContactIntent(contact_id) if contact_id else None
    if related in ("task", "subtask"):
        task_id = _clean(data.get(TASK_ID_KEY))
        if task_id is None:
            return None
        subtask_id = _clean(data.get(SUBTASK_ID_KEY)) if related == "subtask" else None
        return TaskIntent(task_id, subtask_id)
    return None


def intent_from_url(url: str, data: Mapping[str, Any] | None = None) -> NavigationIntent | None:
    """Resolve a full or relative URL. Raises ValueError if it can't be parsed."""
    parts = urlsplit(url)
    params = dict(parse_qsl(parts.query))
    return intent_from_query(params, data, prefer_contact=parts.path.startswith(CRM_ROUTE))


def _has_deep_link(url: str) -> bool:
    try:
        return intent_from_url(url) is not None
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Transient state
# ---------------------------------------------------------------------------


class SessionStore:
    """Short-lived key/value store that lives as long as the session."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def pop(self, key: str) -> str | None:
        return self._values.pop(key, None)

    def clear(self) -> None:
        self._values.clear()


class HighlightState:
    """Which task/subtask is pulsing, and which subtasks are expanded.

    The highlight clears itself `duration` seconds after it was set. Expanded
    subtasks are left alone: they stay open until collapsed by hand.
    """

    def __init__(
        self,
        duration: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.duration = duration
        self._clock = clock
        self._task_id: str | None = None
        self._subtask_id: str | None = None
        self._expires_at: float | None = None
        self._timer: asyncio.TimerHandle | None = None
        self.expanded_subtask_ids: set[str] = set()

    def highlight(self, task_id: str, subtask_id: str | None = None) -> None:
        self._cancel_timer()
        self._task_id = task_id
        self._subtask_id = subtask_id
        self._expires_at = self._clock() + self.duration
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: expiry is still enforced lazily on read.
            return
        self._timer = loop.call_later(self.duration, self.clear)

    def _expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    @property
    def highlighted_task_id(self) -> str | None:
        if self._expired():
            self.clear()
        return self._task_id

    @property
    def highlighted_subtask_id(self) -> str | None:
        if self._expired():
            self.clear()
        return self._subtask_id

    def clear(self) -> None:
        self._cancel_timer()
        self._task_id = None
        self._subtask_id = None
        self._expires_at = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def expand_subtasks(self, subtask_ids: tuple[str, ...] | list[str]) -> None:
        self.expanded_subtask_ids.update(subtask_ids)

    def toggle_subtask(self, subtask_id: str) -> bool:
        """Flip one subtask's expanded state. Returns the new state."""
        if subtask_id in self.expanded_subtask_ids:
            self.expanded_subtask_ids.discard(subtask_id)
            return False
        self.expanded_subtask_ids.add(subtask_id)
        return True


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class NavigationCoordinator:
    """Turns deep links and notification clicks into navigation + highlight."""

    def __init__(
        self,
        navigator: Navigator,
        store: CrmStore | None = None,
        session: SessionStore | None = None,
        highlight: HighlightState | None = None,
    ) -> None:
        self._navigator = navigator
        self._store = store
        self.session = session or SessionStore()
        self.highlight = highlight or HighlightState()

    def apply(self, intent: NavigationIntent, replace: bool = False) -> None:
        """Navigate to the intent's route and set expand/highlight state.

        Clicks push the bare route, so Back returns to the page the user was
        on. A deep link already sitting in the current URL passes
        `replace=True`: its query is swapped for the bare route and never
        lands in the back history.
        """
        self._navigator.navigate(intent.route, replace=replace)

        if isinstance(intent, ContactIntent):
            if self._store is not None:
                self._store.expand_contact(intent.expand_contact_id)
            logger.info("Navigated to contact %s", intent.expand_contact_id)
            return

        if isinstance(intent, TaskIntent):
            if self._store is not None:
                self._store.expand_task(intent.highlight_task_id)
                self._expand_path_to(intent)
            self.highlight.highlight(intent.highlight_task_id, intent.highlight_subtask_id)
            logger.info(
                "Navigated to task %s (subtask %s)",
                intent.highlight_task_id, intent.highlight_subtask_id,
            )
            return

        raise TypeError(f"Unhandled navigation intent: {intent!r}")

    def _expand_path_to(self, intent: TaskIntent) -> None:
        if intent.highlight_subtask_id is None:
            return
        task = self._store.snapshot.find_task(intent.highlight_task_id)
        if task is None:
            return
        path = subtask_path(task.subtasks, intent.highlight_subtask_id)
        # Open every ancestor; the target itself stays as it was.
        self.highlight.expand_subtasks(path[:-1])

    # -- trigger (a): deep link at load time ---------------------------------

    def handle_initial_load(self, url: str, authenticated: bool) -> NavigationIntent | None:
        """Handle the URL the app was opened with.

        Before login, a deep link is parked in the session store. After login,
        a parked link wins over whatever query the current URL carries: it is
        the older, still unfinished request. The parked link is consumed.
        """
        if not authenticated:
            if _has_deep_link(url):
                parts = urlsplit(url)
                pending = parts.path + (f"?{parts.query}" if parts.query else "")
                self.session.set(PENDING_DEEP_LINK_KEY, pending)
                logger.info("Stored pending deep link %s until login", pending)
            return None

        pending = self.session.pop(PENDING_DEEP_LINK_KEY)
        if pending:
            intent = self._resolve(pending)
            if intent is not None:
                self.apply(intent, replace=True)
                return intent

        intent = self._resolve(url)
        if intent is not None:
            self.apply(intent, replace=True)
        return intent

    def handle_authenticated(self, url: str | None = None) -> NavigationIntent | None:
        """Replay a deep link parked before login."""
        if url is None:
            url = self._navigator.current_url
        return self.handle_initial_load(url, authenticated=True)

    def _resolve(self, url: str) -> NavigationIntent | None:
        try:
            return intent_from_url(url)
        except ValueError as exc:
            logger.warning("Ignoring unparsable deep link %r: %s", url, exc)
            return None

    # -- trigger (b): in-app notification toast ------------------------------

    def handle_notification_click(self, notification: Notification) -> NavigationIntent | None:
        intent = intent_from_notification(notification)
        if intent is None:
            logger.debug("Notification %s has no navigation target", notification.id)
            return None
        self.apply(intent)
        return intent

    # -- trigger (c): background push click relayed by the platform ----------

    def handle_platform_message(self, message: Mapping[str, Any]) -> NavigationIntent | None:
        """Handle `{type: 'NOTIFICATION_CLICK', url, data}` from the platform."""
        if not isinstance(message, Mapping) or message.get("type") != NOTIFICATION_CLICK:
            return None

        raw_url = message.get("url")
        data = message.get("data")
        if not isinstance(data, Mapping):
            data = {}

        if not isinstance(raw_url, str) or not raw_url:
            intent = intent_from_query({}, data)
            if intent is not None:
                self.apply(intent)
            return intent

        try:
            parts = urlsplit(raw_url)
            intent = intent_from_query(
                dict(parse_qsl(parts.query)), data,
                prefer_contact=parts.path.startswith(CRM_ROUTE),
            )
        except ValueError as exc:
            if raw_url.startswith("/"):
                logger.warning("Unparsable push URL %r (%s), navigating directly", raw_url, exc)
                self._navigator.navigate(raw_url)
            else:
                logger.warning("Dropping unparsable push URL %r: %s", raw_url, exc)
            return None

        if intent is not None:
            self.apply(intent)
            return intent

        if parts.path:
            self._navigator.navigate(parts.path)
        return None


class HistoryNavigator:
    """In-memory router history with push/replace semantics."""

    def __init__(self, initial_url: str = "/") -> None:
        self.history: list[str] = [initial_url]

    @property
    def current_url(self) -> str:
        return self.history[-1]

    def navigate(self, url: str, replace: bool = False) -> None:
        if replace:
            self.history[-1] = url
        else:
            self.history.append(url)
        logger.debug("Route -> %s (%s)", url, "replace" if replace else "push")

    def back(self) -> str:
        if len(self.history) > 1:
            self.history.pop()
        return self.current_url
