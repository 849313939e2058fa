from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Iterable, Protocol, Sequence

from backend.core.aggregates import build_package_compliance, build_site_aggregates
from backend.core.errors import IngestionError
from backend.core.schema import TaskWithStatus
from backend.core.status import with_status
from backend.core.weights import ProportionalWeightNormalizer, WeightNormalizer, normalize_site_weights
from backend.domain import IngestedSnapshot, SheetSource, SourceOutcome, SourceReport
from backend.extractors import task_sheet

logger = logging.getLogger(__name__)

SheetParser = Callable[[bytes, str], task_sheet.TaskSheetParseResult]
Clock = Callable[[], datetime]


class PayloadFetcher(Protocol):
    async def fetch(self, source: SheetSource) -> bytes: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def deduplicate_tasks(tasks: Iterable[TaskWithStatus]) -> list[TaskWithStatus]:
    """Keep the first task seen for every ``task_uid``."""

    seen: set[str] = set()
    unique: list[TaskWithStatus] = []
    for task in tasks:
        if task.task_uid in seen:
            continue
        seen.add(task.task_uid)
        unique.append(task)
    return unique


def merge_outcomes(outcomes: Sequence[SourceOutcome]) -> list[TaskWithStatus]:
    """Concatenate successful outcomes in declaration order and drop duplicates."""

    combined: list[TaskWithStatus] = []
    for outcome in outcomes:
        if outcome.ok:
            combined.extend(outcome.tasks)
    return deduplicate_tasks(combined)


class IngestionPipeline:
    """Fetch, parse and classify every source concurrently, then merge.

    Each source runs as an isolated unit: whatever goes wrong inside it is
    turned into a failed :class:`SourceOutcome` and the remaining sources
    still contribute.  The run only fails when every source failed.
    """

    def __init__(
        self,
        sources: Sequence[SheetSource],
        fetcher: PayloadFetcher,
        *,
        parser: SheetParser | None = None,
        normalizer: WeightNormalizer | None = None,
        clock: Clock | None = None,
        max_concurrency: int | None = None,
        sheet_name: str | None = "Data_Entry",
    ) -> None:
        self._sources = tuple(sources)
        self._fetcher = fetcher
        self._parser = parser or partial(task_sheet.parse, sheet_name=sheet_name)
        self._normalizer = normalizer or ProportionalWeightNormalizer()
        self._clock = clock or _utcnow
        self._max_concurrency = max_concurrency

    @property
    def sources(self) -> tuple[SheetSource, ...]:
        return self._sources

    async def _ingest_source(
        self,
        source: SheetSource,
        semaphore: asyncio.Semaphore,
        now: datetime,
    ) -> SourceOutcome:
        async with semaphore:
            try:
                payload = await self._fetcher.fetch(source)
                parsed = await asyncio.to_thread(self._parser, payload, source.package_id)
                tasks = tuple(with_status(task, now) for task in parsed.tasks)
            except Exception as exc:  # noqa: BLE001 - isolate the failing source
                logger.error("%s: ingestion failed: %s", source.package_id, exc)
                return SourceOutcome(source=source, error=f"{type(exc).__name__}: {exc}")

        logger.info("%s: loaded %d tasks", source.package_id, len(tasks))
        return SourceOutcome(source=source, tasks=tasks, skipped_rows=parsed.skipped_rows)

    async def ingest_all(self) -> IngestedSnapshot:
        if not self._sources:
            raise IngestionError("no sheet sources configured")

        started = time.perf_counter()
        now = self._clock()
        limit = self._max_concurrency or len(self._sources)
        semaphore = asyncio.Semaphore(max(1, limit))

        outcomes = await asyncio.gather(
            *(self._ingest_source(source, semaphore, now) for source in self._sources)
        )

        failures = [outcome for outcome in outcomes if not outcome.ok]
        if len(failures) == len(outcomes):
            details = "; ".join(f"{item.source.package_id}: {item.error}" for item in failures)
            raise IngestionError(f"all {len(failures)} sources failed ({details})")

        unique = merge_outcomes(outcomes)
        raw_count = sum(len(outcome.tasks) for outcome in outcomes)
        normalised = normalize_site_weights(unique, self._normalizer)
        sites = build_site_aggregates(normalised, now)
        compliance = build_package_compliance(sites)

        snapshot = IngestedSnapshot(
            tasks=tuple(normalised),
            sites=tuple(sites),
            package_compliance=compliance,
            last_refresh=self._clock(),
            source_reports=tuple(SourceReport.from_outcome(outcome) for outcome in outcomes),
        )
        logger.info(
            "Ingested %d unique tasks (%d raw) across %d sites from %d/%d sources in %.0fms",
            len(snapshot.tasks),
            raw_count,
            len(snapshot.sites),
            len(outcomes) - len(failures),
            len(outcomes),
            (time.perf_counter() - started) * 1000,
        )
        return snapshot
