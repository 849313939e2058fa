from __future__ import annotations

import itertools
import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.schema import TaskRecord, TaskStatus
from backend.core.status import derive_status, with_status

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
PAST = date(2024, 6, 1)
TODAY = date(2024, 6, 15)
FUTURE = date(2024, 7, 1)


def _task(**dates) -> TaskRecord:
    return TaskRecord(task_uid="T-1", site_uid="S-1", package_id="PKG", **dates)


@pytest.mark.parametrize(
    ("dates", "expected"),
    [
        ({"actual_finish": PAST, "actual_start": PAST, "planned_finish": PAST}, TaskStatus.COMPLETED),
        ({"actual_finish": PAST}, TaskStatus.COMPLETED),
        ({"actual_start": PAST, "planned_finish": PAST}, TaskStatus.OVERDUE),
        ({"actual_start": PAST, "planned_finish": TODAY}, TaskStatus.IN_PROGRESS),
        ({"actual_start": PAST, "planned_finish": FUTURE}, TaskStatus.IN_PROGRESS),
        ({"actual_start": PAST}, TaskStatus.IN_PROGRESS),
        ({"planned_start": PAST}, TaskStatus.LATE_START),
        ({"planned_start": PAST, "planned_finish": FUTURE}, TaskStatus.LATE_START),
        ({"planned_start": TODAY}, TaskStatus.NOT_STARTED),
        ({"planned_start": FUTURE}, TaskStatus.NOT_STARTED),
        ({}, TaskStatus.NOT_STARTED),
    ],
)
def test_derive_status_rules(dates, expected):
    assert derive_status(_task(**dates), NOW) is expected


def test_derive_status_is_total_over_present_and_absent_dates():
    fields = ["planned_start", "planned_finish", "actual_start", "actual_finish"]
    for mask in itertools.product([None, PAST, FUTURE], repeat=len(fields)):
        task = _task(**dict(zip(fields, mask)))
        first = derive_status(task, NOW)
        assert isinstance(first, TaskStatus)
        assert derive_status(task, NOW) is first


def test_with_status_reports_days_late():
    overdue = with_status(_task(actual_start=PAST, planned_finish=date(2024, 6, 10)), NOW)
    late = with_status(_task(planned_start=date(2024, 6, 12)), NOW)
    on_time = with_status(_task(actual_start=PAST, planned_finish=FUTURE), NOW)

    assert overdue.status is TaskStatus.OVERDUE
    assert overdue.days_late == 5
    assert late.status is TaskStatus.LATE_START
    assert late.days_late == 3
    assert on_time.days_late is None
    assert on_time.task_uid == "T-1"


def test_derive_status_accepts_plain_date_as_now():
    assert derive_status(_task(planned_start=PAST), TODAY) is TaskStatus.LATE_START
