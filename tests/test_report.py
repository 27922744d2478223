"""Unit tests for scan and comparison reporting helpers."""
from __future__ import annotations

import json
from datetime import datetime, timezone

from posturediff.engine import aggregator, comparator
from posturediff.engine.types import Finding, ResourceId, Severity
from posturediff.scanner import report


def _finding(rule_id: str, rtype: str, name: str, severity: Severity, message: str = "") -> Finding:
    return Finding(rule_id=rule_id, resource_id=ResourceId(rtype, name), severity=severity, message=message)


def _reports():
    shared = _finding("enc-missing", "storage-bucket", "data", Severity.HIGH, "Bucket has no encryption")
    before = aggregator.aggregate(
        "before",
        [
            _finding("wildcard-action", "identity-policy", "ops", Severity.CRITICAL, "Policy allows wildcard actions"),
            shared,
        ],
        suppressed=[_finding("missing-lifecycle", "storage-bucket", "data", Severity.LOW)],
    )
    after = aggregator.aggregate("after", [shared])
    return before, after


def test_scan_summary_schema():
    timestamp = datetime(2025, 10, 21, 3, 0, tzinfo=timezone.utc)
    before, _ = _reports()

    payload = report.scan_summary(before, timestamp=timestamp)

    assert payload["kind"] == "scan"
    assert payload["scanned_at"] == "2025-10-21T03:00:00Z"
    assert payload["target"] == "before"
    assert payload["summary"] == {"CRITICAL": 1, "HIGH": 1, "MEDIUM": 0, "LOW": 0}
    assert payload["total"] == 2
    first = payload["findings"][0]
    assert first == {
        "rule_id": "wildcard-action",
        "resource": "identity-policy.ops",
        "severity": "CRITICAL",
        "message": "Policy allows wildcard actions",
    }
    assert payload["suppressed"][0]["rule_id"] == "missing-lifecycle"
    json.loads(report.render(payload))


def test_render_scan_csv_uses_expected_header():
    before, _ = _reports()
    payload = report.scan_summary(before, timestamp=datetime(2025, 10, 21, tzinfo=timezone.utc))

    csv_output = report.render(payload, fmt="csv").strip().splitlines()

    assert csv_output[0] == "target,rule_id,resource,severity,message,ts"
    assert csv_output[1].startswith("before,wildcard-action,identity-policy.ops,CRITICAL,")
    assert len(csv_output) == 3


def test_comparison_summary_and_text_table():
    before, after = _reports()
    result = comparator.compare(before, after)

    payload = report.comparison_summary(result, timestamp=datetime(2025, 10, 21, tzinfo=timezone.utc))

    assert payload["kind"] == "comparison"
    assert payload["reduction"] == "50.00%"
    assert payload["severities"]["CRITICAL"] == {
        "before": 1,
        "after": 0,
        "added": 0,
        "removed": 1,
        "persisting": 0,
        "reduction": "100.00%",
    }
    assert payload["severities"]["HIGH"]["persisting"] == 1
    assert payload["severities"]["LOW"]["reduction"] == "0.00%"
    assert [row["resource"] for row in payload["removed"]] == ["identity-policy.ops"]

    text = report.render(payload, fmt="text").splitlines()
    assert text[0] == "Before: before"
    assert text[2].split() == ["SEVERITY", "BEFORE", "AFTER", "ADDED", "REMOVED", "PERSIST", "REDUCTION"]
    assert text[3].split() == ["CRITICAL", "1", "0", "0", "1", "0", "100.00%"]
    assert text[-1].split() == ["TOTAL", "2", "1", "0", "1", "1", "50.00%"]


def test_comparison_csv_includes_total_row():
    before, after = _reports()
    payload = report.comparison_summary(comparator.compare(after, before))

    rows = report.render(payload, fmt="csv").strip().splitlines()

    assert rows[0] == "severity,before,after,added,removed,persisting,reduction,ts"
    assert rows[1].startswith("CRITICAL,0,1,1,0,0,N/A,")
    assert rows[-1].startswith("TOTAL,1,2,1,0,1,-100.00%,")


def test_scan_text_lists_totals_and_findings():
    before, _ = _reports()
    text = report.render(report.scan_summary(before), fmt="text").splitlines()
    assert text[0] == "Target: before"
    assert text[1].split() == ["CRITICAL", "1"]
    assert text[5].split() == ["TOTAL", "2"]
    assert text[6].startswith("[CRITICAL] wildcard-action :: identity-policy.ops")
    assert text[-1] == "Suppressed: 1"
