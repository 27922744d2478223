"""Scan and compare orchestration."""
from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Iterable, Sequence

from ..engine import aggregator, comparator, evaluator, loader, metrics, suppressions
from ..engine.catalog import DEFAULT_CATALOG, RuleCatalog
from ..engine.suppressions import Suppression
from ..engine.types import ComparisonReport, ScanReport
from . import sources

LOGGER = logging.getLogger(__name__)

MAX_WORKERS_ENV = "POSTUREDIFF_MAX_WORKERS"
DEFAULT_MAX_WORKERS = 2


def scan(
    source_text: str,
    *,
    target_name: str = "<memory>",
    catalog: RuleCatalog = DEFAULT_CATALOG,
    suppression_list: Sequence[Suppression] = (),
    now: datetime | None = None,
) -> ScanReport:
    """Load, evaluate and aggregate a single configuration document."""
    return scan_sources(
        [(target_name, source_text)],
        target_name=target_name,
        catalog=catalog,
        suppression_list=suppression_list,
        now=now,
    )


def scan_sources(
    documents: Iterable[tuple[str, str]],
    *,
    target_name: str,
    catalog: RuleCatalog = DEFAULT_CATALOG,
    suppression_list: Sequence[Suppression] = (),
    now: datetime | None = None,
) -> ScanReport:
    start = time.perf_counter()
    resources = loader.load_sources(documents)
    findings = evaluator.evaluate(resources, catalog)
    kept, suppressed = suppressions.apply(findings, suppression_list, now=now or metrics.now())
    report = aggregator.aggregate(target_name, kept, suppressed=suppressed)
    LOGGER.info(
        "Scanned %s: %d resources, %d findings (%d suppressed)",
        target_name,
        len(resources),
        report.total,
        len(report.suppressed),
    )
    metrics.put_metric(
        target=target_name,
        stage="scan",
        latency_ms=(time.perf_counter() - start) * 1000,
        counts=report.severity_counts,
    )
    return report


def scan_target(
    target: str,
    *,
    catalog: RuleCatalog = DEFAULT_CATALOG,
    suppression_list: Sequence[Suppression] = (),
    s3=None,
    now: datetime | None = None,
) -> ScanReport:
    """Scan a local file, local directory or ``s3://bucket/prefix`` target."""
    documents = sources.read_target(target, s3=s3)
    return scan_sources(
        documents,
        target_name=target,
        catalog=catalog,
        suppression_list=suppression_list,
        now=now,
    )


def scan_targets(
    targets: Sequence[str],
    *,
    catalog: RuleCatalog = DEFAULT_CATALOG,
    suppression_list: Sequence[Suppression] = (),
    s3=None,
    now: datetime | None = None,
    max_workers: int | None = None,
) -> list[ScanReport]:
    """Scan independent targets concurrently; the first failure propagates."""
    workers = max_workers or _max_workers_from_env()
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(targets) or 1))) as pool:
        futures = [
            pool.submit(
                scan_target,
                target,
                catalog=catalog,
                suppression_list=suppression_list,
                s3=s3,
                now=now,
            )
            for target in targets
        ]
        return [future.result() for future in futures]


def compare_targets(
    before: str,
    after: str,
    *,
    catalog: RuleCatalog = DEFAULT_CATALOG,
    suppression_list: Sequence[Suppression] = (),
    s3=None,
    now: datetime | None = None,
    max_workers: int | None = None,
) -> ComparisonReport:
    """Scan both targets and diff the resulting reports."""
    before_report, after_report = scan_targets(
        [before, after],
        catalog=catalog,
        suppression_list=suppression_list,
        s3=s3,
        now=now,
        max_workers=max_workers,
    )
    start = time.perf_counter()
    report = comparator.compare(before_report, after_report)
    metrics.put_metric(
        target=f"{before} -> {after}",
        stage="compare",
        latency_ms=(time.perf_counter() - start) * 1000,
        counts=after_report.severity_counts,
        reduction=report.percent_reduction,
    )
    return report


def _max_workers_from_env() -> int:
    raw = os.getenv(MAX_WORKERS_ENV, "")
    if not raw:
        return DEFAULT_MAX_WORKERS
    try:
        return max(1, int(raw))
    except ValueError:
        LOGGER.warning("Invalid %s value %r; using %d", MAX_WORKERS_ENV, raw, DEFAULT_MAX_WORKERS)
        return DEFAULT_MAX_WORKERS


__all__ = [
    "compare_targets",
    "scan",
    "scan_sources",
    "scan_target",
    "scan_targets",
]
