"""Subtask tree aggregation and due-date urgency — pure business logic.

Runs on every render of every task row, so everything here is a pure
function of its arguments: no I/O, no clock reads unless `today` is omitted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Iterator, NamedTuple, Sequence

from crmsync.data.models import Priority, Subtask, Task, parse_due_date


class SubtaskCounts(NamedTuple):
    total: int
    completed: int


class Urgency(str, Enum):
    OVERDUE = "overdue"
    DUE_SOON = "due-soon"
    DUE_WEEK = "due-week"


@dataclass(frozen=True)
class UrgencyScale:
    """Upper bounds (inclusive, in days) for each non-overdue tier, ascending."""

    name: str
    tiers: tuple[tuple[int, Urgency], ...]


DISPLAY_SCALE = UrgencyScale(
    name="display",
    tiers=((3, Urgency.DUE_SOON), (10, Urgency.DUE_WEEK)),
)


# ---------------------------------------------------------------------------
# Recursive counts
# ---------------------------------------------------------------------------


def count_subtasks(subtasks: Sequence[Subtask] | None) -> SubtaskCounts:
    """Count every subtask at every depth, and how many are completed.

    The owning task itself is not part of its own count.
    """
    if not subtasks:
        return SubtaskCounts(0, 0)

    total = 0
    completed = 0
    for subtask in subtasks:
        total += 1
        if subtask.completed:
            completed += 1
        child = count_subtasks(subtask.subtasks)
        total += child.total
        completed += child.completed
    return SubtaskCounts(total, completed)


def iter_subtasks(subtasks: Sequence[Subtask] | None) -> Iterator[Subtask]:
    """Depth-first, pre-order walk over a subtask tree."""
    for subtask in subtasks or ():
        yield subtask
        yield from iter_subtasks(subtask.subtasks)


def find_subtask(subtasks: Sequence[Subtask] | None, subtask_id: str) -> Subtask | None:
    for subtask in iter_subtasks(subtasks):
        if subtask.id == subtask_id:
            return subtask
    return None


def subtask_path(subtasks: Sequence[Subtask] | None, subtask_id: str) -> tuple[str, ...]:
    """Ids from the top-level subtask down to `subtask_id`, inclusive.

    Empty when the id is not in the tree. Used to expand every ancestor of a
    highlighted subtask.
    """
    for subtask in subtasks or ():
        if subtask.id == subtask_id:
            return (subtask.id,)
        below = subtask_path(subtask.subtasks, subtask_id)
        if below:
            return (subtask.id, *below)
    return ()


# ---------------------------------------------------------------------------
# Due dates
# ---------------------------------------------------------------------------


def days_until(due: date | datetime | str, today: date | None = None) -> int:
    """Whole days from `today` to `due`, both truncated to the day."""
    due_day = parse_due_date(due)
    if due_day is None:
        raise ValueError("days_until() needs a due date")
    if today is None:
        today = date.today()
    return (due_day - today).days


def classify_due_date(
    due: date | datetime | str | None,
    completed: bool = False,
    today: date | None = None,
    scale: UrgencyScale = DISPLAY_SCALE,
) -> Urgency | None:
    """Urgency badge for a due date, or None when no badge is shown.

    Completed items and items without a date never get a badge. A date equal
    to today is not overdue; yesterday is.
    """
    if completed or due is None or due == "":
        return None

    diff = days_until(due, today)
    if diff < 0:
        return Urgency.OVERDUE
    for upper, urgency in scale.tiers:
        if diff <= upper:
            return urgency
    return None


# ---------------------------------------------------------------------------
# Task list derivations
# ---------------------------------------------------------------------------


class TaskFilter(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    WITH_CONTACT = "with-contact"
    DUE_SOON = "due-soon"
    DUE_WEEK = "due-week"
    OVERDUE = "overdue"


_PRIORITY_FILTERS = {
    TaskFilter.HIGH: Priority.HIGH,
    TaskFilter.MEDIUM: Priority.MEDIUM,
    TaskFilter.LOW: Priority.LOW,
}

_URGENCY_FILTERS = {
    TaskFilter.DUE_SOON: Urgency.DUE_SOON,
    TaskFilter.DUE_WEEK: Urgency.DUE_WEEK,
    TaskFilter.OVERDUE: Urgency.OVERDUE,
}


def matches_filter(task: Task, task_filter: TaskFilter, today: date | None = None) -> bool:
    if task_filter is TaskFilter.ALL:
        return True
    if task_filter is TaskFilter.COMPLETED:
        return task.completed
    if task_filter is TaskFilter.ACTIVE:
        return not task.completed
    if task_filter in _PRIORITY_FILTERS:
        return not task.completed and task.priority is _PRIORITY_FILTERS[task_filter]
    if task_filter is TaskFilter.WITH_CONTACT:
        return bool(task.associated_contact_ids())
    if task_filter in _URGENCY_FILTERS:
        urgency = classify_due_date(task.due_date, task.completed, today)
        return urgency is _URGENCY_FILTERS[task_filter]
    raise ValueError(f"Unhandled task filter: {task_filter!r}")


def filter_tasks(
    tasks: Iterable[Task],
    task_filter: TaskFilter | str = TaskFilter.ALL,
    today: date | None = None,
) -> list[Task]:
    task_filter = TaskFilter(task_filter)
    if today is None:
        today = date.today()
    return [t for t in tasks if matches_filter(t, task_filter, today)]


@dataclass(frozen=True)
class TaskSummary:
    """Counters shown next to each task filter."""

    total: int = 0
    completed: int = 0
    active: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    with_contact: int = 0
    due_soon: int = 0
    due_week: int = 0
    overdue: int = 0


def summarize_tasks(tasks: Iterable[Task], today: date | None = None) -> TaskSummary:
    if today is None:
        today = date.today()
    tasks = list(tasks)

    def count(task_filter: TaskFilter) -> int:
        return sum(1 for t in tasks if matches_filter(t, task_filter, today))

    return TaskSummary(
        total=len(tasks),
        completed=count(TaskFilter.COMPLETED),
        active=count(TaskFilter.ACTIVE),
        high=count(TaskFilter.HIGH),
        medium=count(TaskFilter.MEDIUM),
        low=count(TaskFilter.LOW),
        with_contact=count(TaskFilter.WITH_CONTACT),
        due_soon=count(TaskFilter.DUE_SOON),
        due_week=count(TaskFilter.DUE_WEEK),
        overdue=count(TaskFilter.OVERDUE),
    )
