"""Batch categorization with per-run statistics.

Public API:
    - :func:`categorize_batch`
    - :class:`BatchResult`
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import NamedTuple

from .engine import CategorizationEngine
from .logging_setup import get_logger
from .models import CategorizationOutcome, CategorizationStats, ClassificationRequest
from .pmap import p_map

_logger = get_logger("statement_categorizer.batch")


class BatchResult(NamedTuple):
    outcomes: list[CategorizationOutcome]
    stats: CategorizationStats


def categorize_batch(
    engine: CategorizationEngine,
    requests: Iterable[ClassificationRequest],
    *,
    concurrency: int = 1,
    source: str = "batch",
    cancel: threading.Event | None = None,
) -> BatchResult:
    """Categorize every request; outcomes are returned in input order.

    A failing party never aborts the run: classifier problems come back as
    outcomes carrying an error and are counted as failed. Nothing is saved;
    callers decide when to persist the learned mappings.
    """

    items = list(requests)
    _logger.info(
        "categorize:batch_start source=%s transactions=%d concurrency=%d",
        source,
        len(items),
        concurrency,
    )
    outcomes = p_map(
        items,
        lambda req: engine.categorize(req, cancel=cancel),
        concurrency=concurrency,
    )

    stats = CategorizationStats()
    for req, outcome in zip(items, outcomes, strict=True):
        stats.record(outcome)
        if outcome.error is not None:
            _logger.warning(
                "categorize:batch_item_failed source=%s party=%s error=%s",
                source,
                req.party_name,
                outcome.error,
            )
    stats.log_summary(_logger, source)
    return BatchResult(outcomes=outcomes, stats=stats)


__all__ = ["BatchResult", "categorize_batch"]
