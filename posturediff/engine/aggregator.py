"""Tally findings by severity into scan reports."""
from __future__ import annotations

from typing import Iterable

from .types import Finding, ScanReport, Severity


def tally(findings: Iterable[Finding]) -> dict[Severity, int]:
    """Count findings per severity; every level is present, even at zero."""
    counts = {severity: 0 for severity in Severity.ordered()}
    for finding in findings:
        counts[finding.severity] += 1
    return counts


def aggregate(
    target_name: str,
    findings: Iterable[Finding],
    *,
    suppressed: Iterable[Finding] = (),
) -> ScanReport:
    return ScanReport(target_name=target_name, findings=tuple(findings), suppressed=tuple(suppressed))


def highest_severity(report: ScanReport) -> Severity | None:
    for severity, count in tally(report.findings).items():
        if count:
            return severity
    return None


__all__ = ["aggregate", "highest_severity", "tally"]
