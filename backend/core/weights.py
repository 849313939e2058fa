"""Per-site weight normalisation policies."""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Protocol, Sequence

from backend.core.schema import TaskWithStatus

logger = logging.getLogger(__name__)


class WeightNormalizer(Protocol):
    """Rescale the weights of one site's tasks."""

    target_sum: float

    def normalize(self, tasks: Sequence[TaskWithStatus]) -> list[TaskWithStatus]:
        """Return the tasks with weights summing to ``target_sum``."""


class ProportionalWeightNormalizer:
    """Scale weights proportionally so each site sums to ``target_sum``.

    A site whose weights add up to zero cannot be scaled, so its tasks share
    the target equally instead.
    """

    def __init__(self, target_sum: float = 100.0) -> None:
        if target_sum <= 0:
            raise ValueError("target_sum must be positive")
        self.target_sum = float(target_sum)

    def normalize(self, tasks: Sequence[TaskWithStatus]) -> list[TaskWithStatus]:
        if not tasks:
            return []
        total = sum(task.weight for task in tasks)
        if total <= 0:
            share = self.target_sum / len(tasks)
            logger.debug("Site %s has no weights, assigning equal shares", tasks[0].site_uid)
            return [task.model_copy(update={"weight": share}) for task in tasks]
        factor = self.target_sum / total
        return [task.model_copy(update={"weight": task.weight * factor}) for task in tasks]


def normalize_site_weights(
    tasks: Sequence[TaskWithStatus],
    normalizer: WeightNormalizer,
) -> list[TaskWithStatus]:
    """Apply ``normalizer`` per site while preserving the input order."""

    by_site: OrderedDict[str, list[int]] = OrderedDict()
    for index, task in enumerate(tasks):
        by_site.setdefault(task.site_uid, []).append(index)

    result: list[TaskWithStatus | None] = [None] * len(tasks)
    for indices in by_site.values():
        rescaled = normalizer.normalize([tasks[index] for index in indices])
        for index, task in zip(indices, rescaled):
            result[index] = task
    return [task for task in result if task is not None]
