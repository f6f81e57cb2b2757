"""Tests for crmsync.core.navigation — deep links, toast clicks, push clicks."""

import asyncio

import pytest

from crmsync.core.navigation import (
    PENDING_DEEP_LINK_KEY,
    ContactIntent,
    HighlightState,
    HistoryNavigator,
    NavigationCoordinator,
    TaskIntent,
    intent_from_notification,
    intent_from_query,
    intent_from_url,
)
from crmsync.data.models import Notification


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def navigator():
    return HistoryNavigator("/")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def coordinator(navigator, store, clock):
    return NavigationCoordinator(navigator, store=store, highlight=HighlightState(3.0, clock))


class TestIntentResolution:
    def test_contact_query(self):
        assert intent_from_query({"expandContact": "c1"}) == ContactIntent("c1")

    def test_task_query_with_subtask(self):
        intent = intent_from_query({"highlightTask": "t1", "highlightSubtask": "s3"})
        assert intent == TaskIntent("t1", "s3")

    def test_data_fallback(self):
        assert intent_from_query({}, {"taskId": "t1"}) == TaskIntent("t1")

    def test_query_beats_data(self):
        intent = intent_from_query({"expandContact": "c1"}, {"taskId": "t1"})
        assert intent == ContactIntent("c1")

    def test_blank_values_ignored(self):
        assert intent_from_query({"expandContact": "  "}) is None

    def test_url_on_crm_route_prefers_contact(self):
        intent = intent_from_url("/crm?expandContact=c1&highlightTask=t1")
        assert intent == ContactIntent("c1")

    def test_absolute_url(self):
        intent = intent_from_url("https://app.example.com/tasks?highlightTask=t1")
        assert intent == TaskIntent("t1")

    def test_notification_targets(self):
        contact = Notification(type="contact_created", related_type="contact",
                               data={"contactId": "c1"})
        task = Notification(type="task_assigned", related_type="task", data={"taskId": "t1"})
        subtask = Notification(type="subtask_completed", related_type="subtask",
                               data={"taskId": "t1", "subtaskId": "s3"})
        other = Notification(type="system", related_type="page", data={"pageId": "p1"})

        assert intent_from_notification(contact) == ContactIntent("c1")
        assert intent_from_notification(task) == TaskIntent("t1")
        assert intent_from_notification(subtask) == TaskIntent("t1", "s3")
        assert intent_from_notification(other) is None

    def test_task_notification_without_task_id(self):
        n = Notification(type="task_assigned", related_type="task", data={})
        assert intent_from_notification(n) is None


class TestInitialLoad:
    def test_unauthenticated_parks_deep_link(self, coordinator, navigator):
        result = coordinator.handle_initial_load("/tasks?highlightTask=t1", authenticated=False)
        assert result is None
        assert coordinator.session.get(PENDING_DEEP_LINK_KEY) == "/tasks?highlightTask=t1"
        assert navigator.history == ["/"]

    def test_unauthenticated_without_deep_link_parks_nothing(self, coordinator):
        coordinator.handle_initial_load("/crm", authenticated=False)
        assert coordinator.session.get(PENDING_DEEP_LINK_KEY) is None

    def test_pending_link_wins_and_is_cleared(self, coordinator, navigator, store):
        coordinator.session.set(PENDING_DEEP_LINK_KEY, "/tasks?highlightTask=t1")

        intent = coordinator.handle_initial_load("/crm?expandContact=c1", authenticated=True)

        assert intent == TaskIntent("t1")
        assert navigator.current_url == "/tasks"
        assert store.snapshot.expanded_task_id == "t1"
        assert store.snapshot.expanded_contact_id is None
        assert coordinator.session.get(PENDING_DEEP_LINK_KEY) is None

    def test_current_url_used_without_pending(self, coordinator, navigator, store):
        intent = coordinator.handle_initial_load("/crm?expandContact=c1", authenticated=True)
        assert intent == ContactIntent("c1")
        assert navigator.history == ["/crm"]
        assert store.snapshot.expanded_contact_id == "c1"

    def test_login_replays_parked_link(self, coordinator, navigator):
        coordinator.handle_initial_load("/crm?expandContact=c1", authenticated=False)
        navigator.navigate("/login")
        assert coordinator.handle_authenticated() == ContactIntent("c1")
        assert navigator.current_url == "/crm"

    def test_deep_link_url_replaced_by_bare_route(self, coordinator, navigator):
        navigator.navigate("/tasks?highlightTask=t1")
        coordinator.handle_initial_load(navigator.current_url, authenticated=True)
        assert navigator.history == ["/", "/tasks"]
        assert navigator.back() == "/"


class TestHighlight:
    def test_highlight_expires(self, coordinator, clock):
        coordinator.apply(TaskIntent("e1", "s3"))
        highlight = coordinator.highlight
        assert highlight.highlighted_task_id == "e1"
        assert highlight.highlighted_subtask_id == "s3"

        clock.now += 3.0
        assert highlight.highlighted_task_id is None
        assert highlight.highlighted_subtask_id is None

    def test_ancestors_expanded_and_stay_expanded(self, coordinator, clock):
        coordinator.apply(TaskIntent("e1", "s3"))
        assert coordinator.highlight.expanded_subtask_ids == {"s2"}
        clock.now += 10
        assert coordinator.highlight.highlighted_task_id is None
        assert coordinator.highlight.expanded_subtask_ids == {"s2"}

    def test_rehighlight_restarts_timer(self, clock):
        highlight = HighlightState(3.0, clock)
        highlight.highlight("t1")
        clock.now += 2
        highlight.highlight("t2")
        clock.now += 2
        assert highlight.highlighted_task_id == "t2"

    @pytest.mark.asyncio
    async def test_timer_clears_with_running_loop(self):
        highlight = HighlightState(0.01)
        highlight.highlight("t1")
        await asyncio.sleep(0.05)
        assert highlight._task_id is None

    def test_toggle_subtask(self):
        highlight = HighlightState()
        assert highlight.toggle_subtask("s1") is True
        assert highlight.toggle_subtask("s1") is False


class TestNotificationClicks:
    def test_toast_click_navigates(self, coordinator, navigator):
        n = Notification(type="contact_updated", related_type="contact", data={"contactId": "c1"})
        assert coordinator.handle_notification_click(n) == ContactIntent("c1")
        assert navigator.current_url == "/crm"

    def test_toast_without_target(self, coordinator, navigator):
        assert coordinator.handle_notification_click(Notification(type="system")) is None
        assert navigator.history == ["/"]

    def test_platform_message(self, coordinator, navigator):
        message = {"type": "NOTIFICATION_CLICK", "url": "/tasks?highlightTask=t1", "data": {}}
        assert coordinator.handle_platform_message(message) == TaskIntent("t1")
        assert navigator.current_url == "/tasks"

    def test_toast_click_keeps_previous_page_in_history(self, store, clock):
        navigator = HistoryNavigator("/crm")
        coordinator = NavigationCoordinator(
            navigator, store=store, highlight=HighlightState(3.0, clock),
        )
        n = Notification(type="task_assigned", related_type="task", data={"taskId": "t1"})

        coordinator.handle_notification_click(n)

        assert navigator.history == ["/crm", "/tasks"]
        assert navigator.back() == "/crm"

    def test_platform_message_pushes_route(self, store, clock):
        navigator = HistoryNavigator("/crm")
        coordinator = NavigationCoordinator(
            navigator, store=store, highlight=HighlightState(3.0, clock),
        )
        message = {"type": "NOTIFICATION_CLICK", "url": "/tasks?highlightTask=t1"}

        coordinator.handle_platform_message(message)

        assert navigator.history == ["/crm", "/tasks"]

    def test_back_stops_at_first_entry(self, navigator):
        assert navigator.back() == "/"
        assert navigator.history == ["/"]

    def test_platform_message_data_fallback(self, coordinator):
        message = {"type": "NOTIFICATION_CLICK", "data": {"contactId": "c1"}}
        assert coordinator.handle_platform_message(message) == ContactIntent("c1")

    def test_other_message_types_ignored(self, coordinator, navigator):
        assert coordinator.handle_platform_message({"type": "SKIP_WAITING"}) is None
        assert coordinator.handle_platform_message("not a mapping") is None
        assert navigator.history == ["/"]

    def test_plain_path_is_pushed(self, coordinator, navigator):
        message = {"type": "NOTIFICATION_CLICK", "url": "/settings"}
        assert coordinator.handle_platform_message(message) is None
        assert navigator.history == ["/", "/settings"]

    def test_unparsable_relative_url_navigates_directly(self, coordinator, navigator):
        # urlsplit() rejects an unbalanced bracket in the netloc
        message = {"type": "NOTIFICATION_CLICK", "url": "//[bad/tasks"}
        assert coordinator.handle_platform_message(message) is None
        assert navigator.history == ["/", "//[bad/tasks"]

    def test_unparsable_absolute_url_dropped(self, coordinator, navigator):
        message = {"type": "NOTIFICATION_CLICK", "url": "https://[bad/tasks"}
        assert coordinator.handle_platform_message(message) is None
        assert navigator.history == ["/"]
