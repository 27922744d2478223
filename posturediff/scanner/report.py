"""Reporting utilities for scan and comparison outcomes."""
from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timezone
from typing import Any, Mapping

from ..engine.comparator import format_percent
from ..engine.types import ComparisonReport, Finding, ScanReport, Severity

SCAN_FIELDS = ["target", "rule_id", "resource", "severity", "message", "ts"]
COMPARISON_FIELDS = ["severity", "before", "after", "added", "removed", "persisting", "reduction", "ts"]


def scan_summary(report: ScanReport, timestamp: datetime | None = None) -> dict[str, Any]:
    """Produce a structured summary for one scan report."""
    return {
        "kind": "scan",
        "scanned_at": _timestamp(timestamp),
        "target": report.target_name,
        "summary": _counts(report),
        "total": report.total,
        "findings": [_finding_row(finding) for finding in report.findings],
        "suppressed": [_finding_row(finding) for finding in report.suppressed],
    }


def comparison_summary(report: ComparisonReport, timestamp: datetime | None = None) -> dict[str, Any]:
    """Produce a structured summary for a before/after comparison."""
    severities = {}
    for severity in Severity.ordered():
        delta = report.deltas[severity]
        severities[severity.value] = {
            "before": delta.total_before,
            "after": delta.total_after,
            "added": len(delta.added),
            "removed": len(delta.removed),
            "persisting": len(delta.persisting),
            "reduction": format_percent(delta.percent_reduction),
        }
    return {
        "kind": "comparison",
        "scanned_at": _timestamp(timestamp),
        "before": report.before.target_name,
        "after": report.after.target_name,
        "total_before": report.total_before,
        "total_after": report.total_after,
        "reduction": format_percent(report.percent_reduction),
        "severities": severities,
        "added": [_finding_row(finding) for finding in report.all_added()],
        "removed": [_finding_row(finding) for finding in report.all_removed()],
        "persisting": [_finding_row(finding) for finding in report.all_persisting()],
    }


def render(report_payload: Mapping[str, Any], fmt: str = "json") -> str:
    """Render the report payload as JSON, CSV or plain text."""
    if fmt == "csv":
        return _render_csv(report_payload)
    if fmt == "text":
        return _render_text(report_payload)
    return json.dumps(report_payload, indent=2, default=str, ensure_ascii=False)


def _counts(report: ScanReport) -> dict[str, int]:
    return {severity.value: count for severity, count in report.severity_counts.items()}


def _finding_row(finding: Finding) -> dict[str, str]:
    return {
        "rule_id": finding.rule_id,
        "resource": str(finding.resource_id),
        "severity": finding.severity.value,
        "message": finding.message,
    }


def _render_csv(payload: Mapping[str, Any]) -> str:
    buffer = io.StringIO()
    timestamp = payload.get("scanned_at") or ""
    if payload.get("kind") == "comparison":
        writer = csv.DictWriter(buffer, fieldnames=COMPARISON_FIELDS)
        writer.writeheader()
        for severity, row in payload.get("severities", {}).items():
            writer.writerow({"severity": severity, **row, "ts": timestamp})
        writer.writerow(
            {
                "severity": "TOTAL",
                "before": payload.get("total_before"),
                "after": payload.get("total_after"),
                "added": len(payload.get("added", [])),
                "removed": len(payload.get("removed", [])),
                "persisting": len(payload.get("persisting", [])),
                "reduction": payload.get("reduction"),
                "ts": timestamp,
            }
        )
        return buffer.getvalue()

    writer = csv.DictWriter(buffer, fieldnames=SCAN_FIELDS)
    writer.writeheader()
    for row in payload.get("findings", []):
        writer.writerow({"target": payload.get("target"), **row, "ts": timestamp})
    return buffer.getvalue()


def _render_text(payload: Mapping[str, Any]) -> str:
    if payload.get("kind") == "comparison":
        return _render_comparison_text(payload)
    lines = [f"Target: {payload.get('target')}"]
    for severity, count in payload.get("summary", {}).items():
        lines.append(f"  {severity:<9}{count:>5}")
    lines.append(f"  {'TOTAL':<9}{payload.get('total', 0):>5}")
    for row in payload.get("findings", []):
        lines.append(f"[{row['severity']}] {row['rule_id']} :: {row['resource']} :: {row['message']}")
    suppressed = payload.get("suppressed", [])
    if suppressed:
        lines.append(f"Suppressed: {len(suppressed)}")
    return "\n".join(lines)


def _render_comparison_text(payload: Mapping[str, Any]) -> str:
    header = f"{'SEVERITY':<10}{'BEFORE':>8}{'AFTER':>8}{'ADDED':>8}{'REMOVED':>9}{'PERSIST':>9}{'REDUCTION':>11}"
    lines = [f"Before: {payload.get('before')}", f"After:  {payload.get('after')}", header]
    for severity, row in payload.get("severities", {}).items():
        lines.append(
            f"{severity:<10}{row['before']:>8}{row['after']:>8}{row['added']:>8}"
            f"{row['removed']:>9}{row['persisting']:>9}{row['reduction']:>11}"
        )
    lines.append(
        f"{'TOTAL':<10}{payload.get('total_before', 0):>8}{payload.get('total_after', 0):>8}"
        f"{len(payload.get('added', [])):>8}{len(payload.get('removed', [])):>9}"
        f"{len(payload.get('persisting', [])):>9}{payload.get('reduction', ''):>11}"
    )
    return "\n".join(lines)


def _timestamp(value: datetime | None) -> str:
    when = value or datetime.now(timezone.utc)
    return when.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


__all__ = ["comparison_summary", "render", "scan_summary"]
