"""
CRM Sync — Real-time event boundary.

Socket.IO payloads arrive as loose JSON. They are narrowed here, once, into
one typed record per event name so the reconciler never touches raw dicts.
Anything that fails validation is logged and dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from crmsync.data.models import Contact, Notification, Task, TaskSource

logger = logging.getLogger(__name__)

CONTACT_CREATED = "contact-created"
CONTACT_UPDATED = "contact-updated"
CONTACT_DELETED = "contact-deleted"
TASK_CREATED = "task-created"
TASK_UPDATED = "task-updated"
TASK_DELETED = "task-deleted"
NOTIFICATION_EVENT = "notification"

ENTITY_EVENTS = (
    CONTACT_CREATED,
    CONTACT_UPDATED,
    CONTACT_DELETED,
    TASK_CREATED,
    TASK_UPDATED,
    TASK_DELETED,
)


@dataclass(frozen=True)
class ContactCreated:
    contact: Contact


@dataclass(frozen=True)
class ContactUpdated:
    contact: Contact


@dataclass(frozen=True)
class ContactDeleted:
    id: str


@dataclass(frozen=True)
class TaskCreated:
    task: Task


@dataclass(frozen=True)
class TaskUpdated:
    task: Task


@dataclass(frozen=True)
class TaskDeleted:
    id: str
    source: TaskSource | None = None


@dataclass(frozen=True)
class NotificationReceived:
    notification: Notification


SyncEvent = (
    ContactCreated | ContactUpdated | ContactDeleted
    | TaskCreated | TaskUpdated | TaskDeleted
    | NotificationReceived
)


def _deleted_id(payload: Any) -> str:
    if not isinstance(payload, dict) or payload.get("id") in (None, ""):
        raise ValueError("delete payload without id")
    return str(payload["id"])


def _deleted_source(payload: dict) -> TaskSource | None:
    raw = payload.get("source")
    if raw in (None, ""):
        return None
    return TaskSource(raw)


def parse_event(name: str, payload: Any) -> SyncEvent | None:
    """Validate a raw Socket.IO payload into its typed event.

    Returns None for unknown event names and malformed payloads.
    """
    try:
        if name == CONTACT_CREATED:
            return ContactCreated(Contact.model_validate(payload))
        if name == CONTACT_UPDATED:
            return ContactUpdated(Contact.model_validate(payload))
        if name == CONTACT_DELETED:
            return ContactDeleted(_deleted_id(payload))
        if name == TASK_CREATED:
            return TaskCreated(Task.model_validate(payload))
        if name == TASK_UPDATED:
            return TaskUpdated(Task.model_validate(payload))
        if name == TASK_DELETED:
            return TaskDeleted(_deleted_id(payload), _deleted_source(payload))
        if name == NOTIFICATION_EVENT:
            return NotificationReceived(Notification.model_validate(payload))
    except (ValidationError, ValueError, TypeError) as exc:
        logger.warning("Dropping malformed '%s' payload: %s", name, exc)
        return None

    logger.debug("Ignoring unknown event '%s'", name)
    return None
