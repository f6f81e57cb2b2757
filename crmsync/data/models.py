"""
CRM Sync — Data Models.

Local projection of the server's contacts and tasks. The server is
authoritative: every model here is a frozen snapshot of the JSON it sent,
replaced wholesale on the next event, never patched in place.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class ContactStatus(str, Enum):
    NEW = "new"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskSource(str, Enum):
    """Where a task lives on the server.

    CONTACT tasks are embedded in a contact document and reach us inside
    contact payloads; GLOBAL tasks are standalone rows.
    """

    CONTACT = "contact"
    GLOBAL = "global"


def parse_due_date(value: Any) -> date | None:
    """Truncate a wire due date to a calendar day.

    Accepts "YYYY-MM-DD", full ISO datetimes (a trailing "Z" included) and
    date/datetime objects. Aware datetimes are converted to local time first,
    the same day a browser would show.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        if "T" not in raw and " " not in raw:
            return date.fromisoformat(raw[:10])
        dt = datetime.fromisoformat(raw)
    else:
        raise ValueError(f"Unsupported due date: {value!r}")

    if dt.tzinfo is not None:
        dt = dt.astimezone()
    return dt.date()


class _WireModel(BaseModel):
    """Base for server payloads: camelCase on the wire, unknown keys kept."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
        coerce_numbers_to_str=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class Subtask(_WireModel):
    """A node of a task's checklist. Children have the same shape, any depth."""

    id: str
    title: str = ""
    completed: bool = False
    due_date: date | None = None
    notes: str | None = None
    subtasks: tuple[Subtask, ...] = ()

    @field_validator("due_date", mode="before")
    @classmethod
    def _parse_due(cls, v: Any) -> date | None:
        return parse_due_date(v)

    @field_validator("subtasks", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return () if v is None else v


class Task(_WireModel):
    """A task, either standalone (global) or embedded in a contact."""

    id: str
    title: str = ""
    description: str = ""
    completed: bool = False
    priority: Priority = Priority.MEDIUM
    due_date: date | None = None
    source: TaskSource | None = None
    contact_id: str | None = None          # legacy single association
    contact_ids: tuple[str, ...] = ()
    contact_name: str | None = None
    subtasks: tuple[Subtask, ...] = ()

    @field_validator("due_date", mode="before")
    @classmethod
    def _parse_due(cls, v: Any) -> date | None:
        return parse_due_date(v)

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, v: Any) -> Any:
        return Priority.MEDIUM if v in (None, "") else v

    @field_validator("source", "contact_id", mode="before")
    @classmethod
    def _blank_is_none(cls, v: Any) -> Any:
        return None if v == "" else v

    @field_validator("contact_ids", "subtasks", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return () if v is None else v

    def associated_contact_ids(self) -> tuple[str, ...]:
        """Contacts this task belongs to; the list wins over the legacy field."""
        if self.contact_ids:
            return self.contact_ids
        if self.contact_id:
            return (self.contact_id,)
        return ()

    def is_global(self) -> bool:
        """True when the task belongs in the standalone task collection."""
        if self.source is None:
            return True
        if self.source is TaskSource.GLOBAL:
            return True
        if self.source is TaskSource.CONTACT:
            return False
        raise ValueError(f"Unhandled task source: {self.source!r}")


class Contact(_WireModel):
    """A CRM contact with its embedded tasks."""

    id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""
    status: ContactStatus = ContactStatus.NEW
    tasks: tuple[Task, ...] = ()

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, v: Any) -> Any:
        return ContactStatus.NEW if v in (None, "") else v

    @field_validator("tasks", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return () if v is None else v


class Notification(_WireModel):
    """A server notification as delivered on the `notification` event."""

    id: str | None = None
    type: str = ""
    title: str = ""
    message: str = ""
    related_type: str | None = None
    related_id: str | None = None
    data: dict[str, Any] = {}

    @field_validator("data", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v
