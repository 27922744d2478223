"""Utility helpers for emitting AWS EMF metrics."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping

import json
import logging
import time

from .types import Severity

LOGGER = logging.getLogger(__name__)

NAMESPACE = "PostureDiff"
DIMENSIONS = [["Target", "Stage"]]


def now() -> datetime:
    """Return a timezone-aware timestamp used for reports."""
    return datetime.now(timezone.utc)


def put_metric(
    *,
    target: str,
    stage: str,
    latency_ms: float,
    counts: Mapping[Severity, int],
    reduction: float | None = None,
) -> None:
    """Emit an Embedded Metric Format (EMF) log entry for one pipeline stage."""
    per_severity = {severity.value.title(): int(counts.get(severity, 0)) for severity in Severity.ordered()}
    definitions = [{"Name": "Latency", "Unit": "Milliseconds"}]
    definitions.extend({"Name": name, "Unit": "Count"} for name in per_severity)
    if reduction is not None:
        definitions.append({"Name": "PercentReduction", "Unit": "Percent"})
    metric = {
        "_aws": {
            "Timestamp": int(time.time() * 1000),
            "CloudWatchMetrics": [
                {
                    "Namespace": NAMESPACE,
                    "Dimensions": DIMENSIONS,
                    "Metrics": definitions,
                }
            ],
        },
        "Target": str(target or "unknown"),
        "Stage": stage,
        "Latency": latency_ms,
        **per_severity,
        "PercentReduction": reduction,
    }
    LOGGER.info("EMF %s", json.dumps({k: v for k, v in metric.items() if v is not None}))
