"""Tests for crmsync.core.events — typed narrowing of raw payloads."""

from crmsync.core.events import (
    ContactCreated,
    ContactDeleted,
    NotificationReceived,
    TaskDeleted,
    TaskUpdated,
    parse_event,
)
from crmsync.data.models import TaskSource


class TestParseEvent:
    def test_contact_created(self):
        event = parse_event("contact-created", {"id": "c1", "name": "Dana"})
        assert isinstance(event, ContactCreated)
        assert event.contact.name == "Dana"

    def test_task_updated(self):
        event = parse_event("task-updated", {"id": "t1", "title": "New title"})
        assert isinstance(event, TaskUpdated)
        assert event.task.title == "New title"

    def test_contact_deleted_numeric_id(self):
        event = parse_event("contact-deleted", {"id": 7})
        assert event == ContactDeleted("7")

    def test_task_deleted_with_source(self):
        event = parse_event("task-deleted", {"id": "t1", "source": "contact"})
        assert event == TaskDeleted("t1", TaskSource.CONTACT)

    def test_task_deleted_without_source(self):
        assert parse_event("task-deleted", {"id": "t1"}) == TaskDeleted("t1", None)

    def test_notification(self):
        event = parse_event("notification", {"id": "n1", "type": "task_assigned"})
        assert isinstance(event, NotificationReceived)
        assert event.notification.type == "task_assigned"

    def test_unknown_event_name(self):
        assert parse_event("page-updated", {"id": "p1"}) is None

    def test_malformed_payloads_are_dropped(self):
        assert parse_event("task-created", {"title": "no id"}) is None
        assert parse_event("task-created", "not a dict") is None
        assert parse_event("contact-deleted", {}) is None
        assert parse_event("contact-deleted", None) is None
        assert parse_event("task-deleted", {"id": "t1", "source": "weird"}) is None
