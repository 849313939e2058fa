from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    COMPLETED = "completed"
    OVERDUE = "overdue"
    IN_PROGRESS = "in_progress"
    LATE_START = "late_start"
    NOT_STARTED = "not_started"


class TaskRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    task_uid: str
    site_uid: str
    package_id: str
    site_name: str | None = None
    district: str | None = None
    task_name: str | None = None
    category: str | None = None
    planned_start: date | None = None
    planned_finish: date | None = None
    actual_start: date | None = None
    actual_finish: date | None = None
    last_updated: datetime | None = None
    weight: float = Field(default=0.0, ge=0)
    progress: float | None = None
    remarks: str | None = None
    source_id: str | None = None
    source_row: int | None = None


class TaskWithStatus(TaskRecord):
    """Task row as served to readers, carrying its derived lifecycle status."""

    status: TaskStatus
    days_late: int | None = None


class SiteAggregate(BaseModel):
    model_config = ConfigDict(frozen=True)

    site_uid: str
    site_name: str | None = None
    package_id: str
    district: str | None = None
    total_tasks: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0
    overdue_tasks: int = 0
    late_start_tasks: int = 0
    not_started_tasks: int = 0
    total_weight: float = 0.0
    completed_weight: float = 0.0
    planned_weight: float = 0.0
    actual_progress: float = 0.0
    planned_progress: float = 0.0
    is_compliant: bool = True
    last_updated: datetime | None = None


class PackageCompliance(BaseModel):
    model_config = ConfigDict(frozen=True)

    package_id: str
    total_sites: int = 0
    compliant_sites: int = 0
    non_compliant_sites: int = 0
    compliance_rate: float = 0.0
    total_tasks: int = 0
    overdue_tasks: int = 0
    late_start_tasks: int = 0
    average_progress: float = 0.0
