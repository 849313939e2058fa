"""Domain entities for source ingestion and published snapshots."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping

from backend.core.schema import PackageCompliance, SiteAggregate, TaskWithStatus


@dataclass(frozen=True, slots=True)
class SheetSource:
    """Static descriptor of one published spreadsheet."""

    package_id: str
    package_name: str
    url: str


@dataclass(frozen=True, slots=True)
class SourceOutcome:
    """Tagged result of fetching, parsing and classifying one source."""

    source: SheetSource
    tasks: tuple[TaskWithStatus, ...] = ()
    skipped_rows: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class SourceReport:
    """Per-source summary kept on the snapshot for health reporting."""

    package_id: str
    records: int
    skipped_rows: int = 0
    error: str | None = None

    @classmethod
    def from_outcome(cls, outcome: SourceOutcome) -> "SourceReport":
        return cls(
            package_id=outcome.source.package_id,
            records=len(outcome.tasks),
            skipped_rows=outcome.skipped_rows,
            error=outcome.error,
        )


@dataclass(frozen=True, slots=True)
class IngestedSnapshot:
    """Internally consistent result of one ingestion run.

    ``sites`` and ``package_compliance`` are always derived from ``tasks`` in
    the same run. The cache publishes a snapshot by swapping a single
    reference and never mutates one in place.
    """

    tasks: tuple[TaskWithStatus, ...]
    sites: tuple[SiteAggregate, ...]
    package_compliance: Mapping[str, PackageCompliance]
    last_refresh: datetime
    source_reports: tuple[SourceReport, ...] = field(default=())

    def __post_init__(self) -> None:
        if not isinstance(self.package_compliance, MappingProxyType):
            object.__setattr__(
                self,
                "package_compliance",
                MappingProxyType(dict(self.package_compliance)),
            )
