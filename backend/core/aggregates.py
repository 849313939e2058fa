from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime
from typing import Iterable, Sequence

from backend.core.schema import PackageCompliance, SiteAggregate, TaskStatus, TaskWithStatus

STATUS_COUNTERS: dict[TaskStatus, str] = {
    TaskStatus.COMPLETED: "completed_tasks",
    TaskStatus.IN_PROGRESS: "in_progress_tasks",
    TaskStatus.OVERDUE: "overdue_tasks",
    TaskStatus.LATE_START: "late_start_tasks",
    TaskStatus.NOT_STARTED: "not_started_tasks",
}


def _percent(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


def _first_text(values: Iterable[str | None]) -> str | None:
    for value in values:
        if value:
            return value
    return None


def _latest(values: Iterable[datetime | None]) -> datetime | None:
    present = [value for value in values if value is not None]
    return max(present) if present else None


def build_site_aggregate(site_uid: str, tasks: Sequence[TaskWithStatus], now: datetime | date) -> SiteAggregate:
    today = now.date() if isinstance(now, datetime) else now
    counts = {field: 0 for field in STATUS_COUNTERS.values()}
    total_weight = 0.0
    completed_weight = 0.0
    planned_weight = 0.0

    for task in tasks:
        counts[STATUS_COUNTERS[task.status]] += 1
        total_weight += task.weight
        if task.status is TaskStatus.COMPLETED:
            completed_weight += task.weight
        if task.planned_finish is not None and task.planned_finish <= today:
            planned_weight += task.weight

    return SiteAggregate(
        site_uid=site_uid,
        site_name=_first_text(task.site_name for task in tasks),
        package_id=tasks[0].package_id,
        district=_first_text(task.district for task in tasks),
        total_tasks=len(tasks),
        total_weight=total_weight,
        completed_weight=completed_weight,
        planned_weight=planned_weight,
        actual_progress=_percent(completed_weight, total_weight),
        planned_progress=_percent(planned_weight, total_weight),
        is_compliant=counts["overdue_tasks"] == 0 and counts["late_start_tasks"] == 0,
        last_updated=_latest(task.last_updated for task in tasks),
        **counts,
    )


def build_site_aggregates(tasks: Sequence[TaskWithStatus], now: datetime | date) -> list[SiteAggregate]:
    """Group tasks by site, keeping the order in which sites first appear."""

    grouped: OrderedDict[str, list[TaskWithStatus]] = OrderedDict()
    for task in tasks:
        grouped.setdefault(task.site_uid, []).append(task)
    return [build_site_aggregate(site_uid, site_tasks, now) for site_uid, site_tasks in grouped.items()]


def build_package_compliance(sites: Sequence[SiteAggregate]) -> dict[str, PackageCompliance]:
    grouped: OrderedDict[str, list[SiteAggregate]] = OrderedDict()
    for site in sites:
        grouped.setdefault(site.package_id, []).append(site)

    compliance: dict[str, PackageCompliance] = {}
    for package_id, package_sites in grouped.items():
        compliant = sum(1 for site in package_sites if site.is_compliant)
        compliance[package_id] = PackageCompliance(
            package_id=package_id,
            total_sites=len(package_sites),
            compliant_sites=compliant,
            non_compliant_sites=len(package_sites) - compliant,
            compliance_rate=_percent(compliant, len(package_sites)),
            total_tasks=sum(site.total_tasks for site in package_sites),
            overdue_tasks=sum(site.overdue_tasks for site in package_sites),
            late_start_tasks=sum(site.late_start_tasks for site in package_sites),
            average_progress=round(
                sum(site.actual_progress for site in package_sites) / len(package_sites), 2
            ),
        )
    return compliance
