"""
CRM Sync — Session service.

Wires one authenticated session together: the initial REST fetch fills the
store, the connection manager streams entity events into the reconciler and
notification events into the toast center. User actions go straight to the
REST backend; their errors are surfaced, not swallowed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from crmsync.core.events import (
    CONTACT_UPDATED,
    ENTITY_EVENTS,
    NOTIFICATION_EVENT,
    NotificationReceived,
    parse_event,
)
from crmsync.data.models import Task, TaskSource
from crmsync.ports.crm_port import CrmApiError

if TYPE_CHECKING:
    from crmsync.core.connection import ConnectionManager
    from crmsync.core.reconciler import CrmStore
    from crmsync.core.toasts import ToastCenter
    from crmsync.ports.crm_port import CrmBackend

logger = logging.getLogger(__name__)

CRM_CONSUMER = "crm"
TOASTS_CONSUMER = "toasts"


class SyncService:
    def __init__(
        self,
        backend: CrmBackend,
        connection: ConnectionManager,
        store: CrmStore,
        toasts: ToastCenter | None = None,
        resync_on_contact_update: bool | None = None,
    ) -> None:
        if resync_on_contact_update is None:
            from crmsync.config import settings
            resync_on_contact_update = settings.RESYNC_ON_CONTACT_UPDATE

        self._backend = backend
        self._connection = connection
        self._store = store
        self._toasts = toasts
        self._resync_on_contact_update = resync_on_contact_update

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start(self, token: str) -> None:
        """Fetch the current server state, then go live."""
        self._backend.set_token(token)
        await self.refresh()
        await self.update_auth(token, authenticated=True)

    async def update_auth(self, token: str | None, authenticated: bool) -> None:
        """Follow a login, logout or token rotation.

        The connection manager drops every listener when it replaces or
        closes the socket, so they are registered again afterwards.
        """
        await self._connection.update_auth(token, authenticated)
        if authenticated and token:
            self._register_handlers()

    async def stop(self) -> None:
        await self._connection.update_auth(None, authenticated=False)
        logger.info("Sync session stopped")

    def _register_handlers(self) -> None:
        registry = self._connection.registry
        for event in ENTITY_EVENTS:
            registry.register(event, self._entity_handler(event), consumer=CRM_CONSUMER)
        if self._toasts is not None:
            registry.register(NOTIFICATION_EVENT, self._on_notification, consumer=TOASTS_CONSUMER)

    def _entity_handler(self, name: str):
        async def handle(payload: Any = None) -> None:
            await self.handle_event(name, payload)
        return handle

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle_event(self, name: str, payload: Any) -> bool:
        """Reconcile one raw entity event. Returns True if the store changed."""
        event = parse_event(name, payload)
        if event is None:
            return False
        changed = self._store.apply(event)
        if name == CONTACT_UPDATED and self._resync_on_contact_update:
            await self.refresh()
        return changed

    async def _on_notification(self, payload: Any = None) -> None:
        event = parse_event(NOTIFICATION_EVENT, payload)
        if isinstance(event, NotificationReceived) and self._toasts is not None:
            await self._toasts.receive(event.notification)

    async def refresh(self) -> bool:
        """Re-fetch contacts and tasks. On failure the current state stays."""
        try:
            contacts = await self._backend.list_contacts()
            tasks = await self._backend.list_tasks()
        except CrmApiError as exc:
            logger.error("Failed to load CRM data: %s", exc)
            return False
        self._store.load(contacts, tasks)
        return True

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def create_task(self, fields: dict[str, Any]) -> list[Task]:
        """Create a task. The matching `task-created` event updates the store."""
        tasks = await self._backend.create_task(fields)
        logger.info("Created %d task row(s)", len(tasks))
        return tasks

    async def update_task(
        self, task_id: str, fields: dict[str, Any], source: TaskSource | None = None,
    ) -> Task:
        return await self._backend.update_task(task_id, fields, source)

    async def delete_task(self, task_id: str, source: TaskSource | None = None) -> None:
        await self._backend.delete_task(task_id, source)
        logger.info("Deleted task %s (%s)", task_id, (source or TaskSource.GLOBAL).value)

    async def sync_calendar(self) -> bool:
        """Run the external calendar and task-list sync.

        This can take minutes. A failure is logged and reported as False;
        the real-time connection is not touched either way.
        """
        try:
            calendar = await self._backend.sync_google_calendar()
            tasks = await self._backend.sync_google_tasks()
        except CrmApiError as exc:
            logger.error("External sync failed: %s", exc)
            return False
        logger.info("External sync finished: calendar=%s tasks=%s", calendar, tasks)
        return True
