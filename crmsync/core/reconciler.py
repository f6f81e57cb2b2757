"""
CRM Sync — Entity Reconciler.

Applies server-pushed events to the local projection of contacts and global
tasks. Delivery is at-least-once with no ordering across entities, so every
rule here is idempotent and tolerant of unknown ids.

The functions never mutate: each returns a new tuple / snapshot, or the very
same object when the event changed nothing, so observers can detect changes
with an identity check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Sequence, TypeVar

from crmsync.core.events import (
    ContactCreated,
    ContactDeleted,
    ContactUpdated,
    NotificationReceived,
    SyncEvent,
    TaskCreated,
    TaskDeleted,
    TaskUpdated,
)
from crmsync.data.models import Contact, Task, TaskSource

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", Contact, Task)


# ---------------------------------------------------------------------------
# Collection primitives
# ---------------------------------------------------------------------------


def apply_created(items: tuple[EntityT, ...], entity: EntityT) -> tuple[EntityT, ...]:
    """Append `entity` unless an entry with the same id is already there."""
    if any(item.id == entity.id for item in items):
        return items
    return (*items, entity)


def apply_updated(items: tuple[EntityT, ...], entity: EntityT) -> tuple[EntityT, ...]:
    """Replace the entry with the same id by `entity`, whole object.

    The payload is the full current state: nothing is merged from the old
    entry. Unknown ids are ignored.
    """
    if not any(item.id == entity.id for item in items):
        return items
    return tuple(entity if item.id == entity.id else item for item in items)


def apply_deleted(items: tuple[EntityT, ...], entity_id: str) -> tuple[EntityT, ...]:
    if not any(item.id == entity_id for item in items):
        return items
    return tuple(item for item in items if item.id != entity_id)


# ---------------------------------------------------------------------------
# Task projections
# ---------------------------------------------------------------------------


def as_global(task: Task) -> Task:
    if task.source is TaskSource.GLOBAL:
        return task
    return task.model_copy(update={"source": TaskSource.GLOBAL})


def as_embedded(task: Task, contact: Contact) -> Task:
    """Tag a contact's embedded task with its owner, as the task list shows it."""
    return task.model_copy(update={
        "source": TaskSource.CONTACT,
        "contact_id": contact.id,
        "contact_name": contact.name,
    })


def tasks_for_contact(contact: Contact, global_tasks: Iterable[Task]) -> list[Task]:
    """Embedded tasks of `contact` followed by global tasks assigned to it.

    Global tasks may use either the `contactIds` list or the legacy single
    `contactId`; the list is checked first.
    """
    embedded = [as_embedded(t, contact) for t in contact.tasks]
    assigned = [
        as_global(t)
        for t in global_tasks
        if t.is_global() and contact.id in t.associated_contact_ids()
    ]
    return embedded + assigned


def contact_names_for(task: Task, contacts: Iterable[Contact]) -> list[str]:
    """Names of the task's contacts that are already in the local cache.

    A task may reference a contact whose create/update event has not arrived
    yet; such ids are skipped rather than treated as an error.
    """
    by_id = {c.id: c for c in contacts}
    return [by_id[cid].name for cid in task.associated_contact_ids() if cid in by_id]


def find_contact(contacts: Sequence[Contact], contact_id: str | None) -> Contact | None:
    if contact_id is None:
        return None
    return next((c for c in contacts if c.id == contact_id), None)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CrmSnapshot:
    """Everything the views render from, at one point in time."""

    contacts: tuple[Contact, ...] = ()
    global_tasks: tuple[Task, ...] = ()
    expanded_contact_id: str | None = None
    expanded_task_id: str | None = None

    def all_tasks(self) -> list[Task]:
        """Global tasks plus every contact's embedded tasks, tagged with owner."""
        tasks = list(self.global_tasks)
        for contact in self.contacts:
            tasks.extend(as_embedded(t, contact) for t in contact.tasks)
        return tasks

    def find_task(self, task_id: str | None) -> Task | None:
        if task_id is None:
            return None
        return next((t for t in self.all_tasks() if t.id == task_id), None)

    def tasks_for_contact(self, contact_id: str) -> list[Task]:
        contact = find_contact(self.contacts, contact_id)
        if contact is None:
            return []
        return tasks_for_contact(contact, self.global_tasks)

    def contact_names_for(self, task: Task) -> list[str]:
        return contact_names_for(task, self.contacts)


def _owns_task(contact: Contact | None, task_id: str | None) -> bool:
    if contact is None or task_id is None:
        return False
    return any(t.id == task_id for t in contact.tasks)


def reconcile(snapshot: CrmSnapshot, event: SyncEvent) -> CrmSnapshot:
    """Apply one inbound event. Returns `snapshot` itself when nothing changed."""
    if isinstance(event, ContactCreated):
        contacts = apply_created(snapshot.contacts, event.contact)
        if contacts is snapshot.contacts:
            return snapshot
        return replace(snapshot, contacts=contacts)

    if isinstance(event, ContactUpdated):
        contacts = apply_updated(snapshot.contacts, event.contact)
        if contacts is snapshot.contacts:
            return snapshot
        return replace(snapshot, contacts=contacts)

    if isinstance(event, ContactDeleted):
        removed = find_contact(snapshot.contacts, event.id)
        contacts = apply_deleted(snapshot.contacts, event.id)
        if contacts is snapshot.contacts:
            return snapshot
        expanded_contact_id = snapshot.expanded_contact_id
        if expanded_contact_id == event.id:
            expanded_contact_id = None
        expanded_task_id = snapshot.expanded_task_id
        if _owns_task(removed, expanded_task_id):
            expanded_task_id = None
        return replace(
            snapshot,
            contacts=contacts,
            expanded_contact_id=expanded_contact_id,
            expanded_task_id=expanded_task_id,
        )

    if isinstance(event, (TaskCreated, TaskUpdated)):
        # Embedded tasks travel inside contact-updated payloads; counting
        # them here as well would list them twice.
        if not event.task.is_global():
            return snapshot
        apply = apply_created if isinstance(event, TaskCreated) else apply_updated
        tasks = apply(snapshot.global_tasks, as_global(event.task))
        if tasks is snapshot.global_tasks:
            return snapshot
        return replace(snapshot, global_tasks=tasks)

    if isinstance(event, TaskDeleted):
        tasks = snapshot.global_tasks
        if event.source in (None, TaskSource.GLOBAL):
            tasks = apply_deleted(tasks, event.id)
        expanded_task_id = snapshot.expanded_task_id
        if expanded_task_id == event.id:
            expanded_task_id = None
        if tasks is snapshot.global_tasks and expanded_task_id == snapshot.expanded_task_id:
            return snapshot
        return replace(snapshot, global_tasks=tasks, expanded_task_id=expanded_task_id)

    if isinstance(event, NotificationReceived):
        return snapshot

    raise TypeError(f"Unhandled event type: {type(event).__name__}")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

Listener = Callable[[CrmSnapshot], None]


class CrmStore:
    """Single owner of the current snapshot.

    All writes go through here; the event loop serializes handler calls, so
    there is never more than one writer at a time.
    """

    def __init__(self, snapshot: CrmSnapshot | None = None) -> None:
        self._snapshot = snapshot or CrmSnapshot()
        self._listeners: list[Listener] = []

    @property
    def snapshot(self) -> CrmSnapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, snapshot: CrmSnapshot) -> bool:
        if snapshot is self._snapshot:
            return False
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                logger.error("Snapshot listener failed: %s", exc)
        return True

    def apply(self, event: SyncEvent) -> bool:
        """Reconcile one event. Returns True if the snapshot changed."""
        return self._set(reconcile(self._snapshot, event))

    def load(self, contacts: Iterable[Contact], tasks: Iterable[Task]) -> None:
        """Replace the collections with a freshly fetched server state.

        Contact-sourced rows in `tasks` are skipped: the contacts already
        embed them. Expand state survives when its target still exists.
        """
        contacts = tuple(contacts)
        global_tasks = tuple(as_global(t) for t in tasks if t.is_global())
        snapshot = CrmSnapshot(contacts=contacts, global_tasks=global_tasks)

        expanded_contact_id = self._snapshot.expanded_contact_id
        if find_contact(contacts, expanded_contact_id) is None:
            expanded_contact_id = None
        expanded_task_id = self._snapshot.expanded_task_id
        if snapshot.find_task(expanded_task_id) is None:
            expanded_task_id = None

        self._set(replace(
            snapshot,
            expanded_contact_id=expanded_contact_id,
            expanded_task_id=expanded_task_id,
        ))
        logger.info(
            "Loaded %d contact(s) and %d global task(s)",
            len(contacts), len(global_tasks),
        )

    def expand_contact(self, contact_id: str | None) -> None:
        if contact_id == self._snapshot.expanded_contact_id:
            return
        self._set(replace(self._snapshot, expanded_contact_id=contact_id))

    def expand_task(self, task_id: str | None) -> None:
        if task_id == self._snapshot.expanded_task_id:
            return
        self._set(replace(self._snapshot, expanded_task_id=task_id))

    def toggle_task(self, task_id: str) -> None:
        current = self._snapshot.expanded_task_id
        self.expand_task(None if current == task_id else task_id)

