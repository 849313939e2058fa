"""Lifecycle status derivation for task rows.

The rules only look at the four scheduling dates and a reference ``now``:

* an actual finish date means the task is completed;
* a started task whose planned finish has passed is overdue;
* a started task otherwise is in progress;
* an unstarted task whose planned start has passed is a late start;
* anything else has simply not started yet.

Dates equal to today are not considered late.
"""
from __future__ import annotations

from datetime import date, datetime

from backend.core.schema import TaskRecord, TaskStatus, TaskWithStatus


def _today(now: datetime | date) -> date:
    if isinstance(now, datetime):
        return now.date()
    return now


def derive_status(task: TaskRecord, now: datetime | date) -> TaskStatus:
    today = _today(now)
    if task.actual_finish is not None:
        return TaskStatus.COMPLETED
    if task.actual_start is not None:
        if task.planned_finish is not None and task.planned_finish < today:
            return TaskStatus.OVERDUE
        return TaskStatus.IN_PROGRESS
    if task.planned_start is not None and task.planned_start < today:
        return TaskStatus.LATE_START
    return TaskStatus.NOT_STARTED


def days_late(task: TaskRecord, status: TaskStatus, now: datetime | date) -> int | None:
    today = _today(now)
    if status is TaskStatus.OVERDUE and task.planned_finish is not None:
        return (today - task.planned_finish).days
    if status is TaskStatus.LATE_START and task.planned_start is not None:
        return (today - task.planned_start).days
    return None


def with_status(task: TaskRecord, now: datetime | date) -> TaskWithStatus:
    status = derive_status(task, now)
    return TaskWithStatus(
        **task.model_dump(),
        status=status,
        days_late=days_late(task, status, now),
    )
