"""Before/after diffing of scan reports."""
from __future__ import annotations

import logging
from typing import Sequence

from .errors import ComparisonError
from .types import ComparisonReport, Finding, ResourceId, ScanReport, Severity, SeverityDelta

LOGGER = logging.getLogger(__name__)

NOT_APPLICABLE = "N/A"


def percent_reduction(before_count: int, after_count: int) -> float | None:
    """Relative drop from ``before_count`` to ``after_count`` in percent.

    Returns ``0.0`` when both are zero and ``None`` when findings appear where
    there were none before.
    """
    if before_count > 0:
        return (before_count - after_count) / before_count * 100
    if after_count == 0:
        return 0.0
    return None


def format_percent(value: float | None) -> str:
    if value is None:
        return NOT_APPLICABLE
    return f"{value:.2f}%"


def compare(before: ScanReport, after: ScanReport) -> ComparisonReport:
    """Diff two reports by (rule_id, resource_id) identity."""
    before_index, before_dups = _index(before)
    after_index, after_dups = _index(after)
    # Counts over repeated findings have no single meaning.
    undefined = before_dups | after_dups

    removed = [finding for key, finding in before_index.items() if key not in after_index]
    added = [finding for key, finding in after_index.items() if key not in before_index]
    persisting = [finding for key, finding in after_index.items() if key in before_index]

    for finding in persisting:
        previous = before_index[finding.key]
        if previous.severity != finding.severity:
            LOGGER.warning(
                "Severity of %s on %s changed from %s to %s between reports",
                finding.rule_id,
                finding.resource_id,
                previous.severity.value,
                finding.severity.value,
            )

    before_counts = before.severity_counts
    after_counts = after.severity_counts
    deltas = {}
    for severity in Severity.ordered():
        deltas[severity] = SeverityDelta(
            severity=severity,
            added=_of(added, severity),
            removed=_of(removed, severity),
            persisting=_of(persisting, severity),
            total_before=before_counts[severity],
            total_after=after_counts[severity],
            percent_reduction=(
                None if severity in undefined else percent_reduction(before_counts[severity], after_counts[severity])
            ),
        )

    report = ComparisonReport(
        before=before,
        after=after,
        deltas=deltas,
        total_before=before.total,
        total_after=after.total,
        percent_reduction=None if undefined else percent_reduction(before.total, after.total),
    )
    LOGGER.info(
        "Compared %s (%d findings) with %s (%d findings): %d added, %d removed, %d persisting",
        before.target_name,
        before.total,
        after.target_name,
        after.total,
        len(added),
        len(removed),
        len(persisting),
    )
    return report


def _index(report: ScanReport) -> tuple[dict[tuple[str, ResourceId], Finding], set[Severity]]:
    """Key findings by identity, keeping the first of any repeats.

    Also returns the severities whose counts include a repeated finding.
    """
    indexed: dict[tuple[str, ResourceId], Finding] = {}
    repeated: set[Severity] = set()
    for finding in report.findings:
        if finding.key in indexed:
            issue = ComparisonError(
                f"report {report.target_name} lists {finding.rule_id} on {finding.resource_id} more than once"
            )
            LOGGER.warning(
                "%s; keeping the first and reporting %s reduction as %s",
                issue,
                finding.severity.value,
                NOT_APPLICABLE,
            )
            repeated.update((finding.severity, indexed[finding.key].severity))
            continue
        indexed[finding.key] = finding
    return indexed, repeated


def _of(findings: Sequence[Finding], severity: Severity) -> tuple[Finding, ...]:
    return tuple(finding for finding in findings if finding.severity is severity)


__all__ = ["NOT_APPLICABLE", "compare", "format_percent", "percent_reduction"]
