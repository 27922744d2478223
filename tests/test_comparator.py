"""Aggregation and before/after comparison tests."""
from __future__ import annotations

import pytest

from posturediff.engine import aggregator, comparator
from posturediff.engine.types import Finding, ResourceId, ScanReport, Severity


def _finding(rule_id: str, name: str, severity: Severity) -> Finding:
    return Finding(rule_id=rule_id, resource_id=ResourceId("storage-bucket", name), severity=severity)


def _report(target: str, findings: list[Finding]) -> ScanReport:
    return aggregator.aggregate(target, findings)


def _scenario() -> tuple[ScanReport, ScanReport]:
    critical = [_finding("wildcard-action", f"c{i}", Severity.CRITICAL) for i in range(2)]
    high = [_finding("enc-missing", f"h{i}", Severity.HIGH) for i in range(14)]
    before = _report("insecure", critical + high)
    after = _report("secure", high[:3])
    return before, after


def test_tally_always_lists_every_severity():
    counts = aggregator.tally([_finding("enc-missing", "a", Severity.HIGH)])
    assert list(counts) == [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]
    assert counts == {Severity.CRITICAL: 0, Severity.HIGH: 1, Severity.MEDIUM: 0, Severity.LOW: 0}


def test_severity_counts_sum_to_findings():
    before, after = _scenario()
    for report in (before, after, _report("empty", [])):
        assert sum(report.severity_counts.values()) == len(report.findings)
        assert report.severity_counts == aggregator.tally(report.findings)


def test_highest_severity():
    before, after = _scenario()
    assert aggregator.highest_severity(before) is Severity.CRITICAL
    assert aggregator.highest_severity(after) is Severity.HIGH
    assert aggregator.highest_severity(_report("empty", [])) is None


def test_before_after_scenario():
    before, after = _scenario()

    result = comparator.compare(before, after)

    assert len(result.removed[Severity.CRITICAL]) == 2
    assert len(result.removed[Severity.HIGH]) == 11
    assert len(result.persisting[Severity.HIGH]) == 3
    assert len(result.all_added()) == 0
    assert result.deltas[Severity.CRITICAL].percent_reduction == 100
    assert result.deltas[Severity.HIGH].percent_reduction == pytest.approx(78.57, abs=0.01)
    assert result.deltas[Severity.MEDIUM].percent_reduction == 0.0
    assert result.total_before == 16
    assert result.total_after == 3
    assert result.percent_reduction == pytest.approx(81.25)


def test_partition_law():
    before, _ = _scenario()
    after = _report(
        "partial",
        [
            _finding("enc-missing", "h0", Severity.HIGH),
            _finding("missing-logging", "new", Severity.MEDIUM),
            _finding("missing-lifecycle", "new", Severity.LOW),
        ],
    )

    result = comparator.compare(before, after)

    assert len(result.all_added()) + len(result.all_persisting()) == len(after.findings)
    assert len(result.all_removed()) + len(result.all_persisting()) == len(before.findings)
    keys = [f.key for f in result.all_added() + result.all_removed() + result.all_persisting()]
    assert len(keys) == len(set(keys))
    assert set(keys) == {f.key for f in before.findings} | {f.key for f in after.findings}
    assert result.deltas[Severity.MEDIUM].percent_reduction is None


def test_report_against_itself():
    before, _ = _scenario()

    result = comparator.compare(before, before)

    assert result.all_added() == ()
    assert result.all_removed() == ()
    assert set(result.all_persisting()) == set(before.findings)
    assert all(delta.percent_reduction == 0 for delta in result.deltas.values())
    assert result.percent_reduction == 0


def test_compare_does_not_mutate_inputs():
    before, after = _scenario()
    snapshot = (before.findings, after.findings)
    comparator.compare(before, after)
    assert (before.findings, after.findings) == snapshot


def test_duplicate_finding_keys_degrade_to_not_applicable(caplog):
    dup = _finding("enc-missing", "a", Severity.HIGH)
    fixed = _finding("wildcard-action", "b", Severity.CRITICAL)

    with caplog.at_level("WARNING"):
        result = comparator.compare(_report("bad", [dup, dup, fixed]), _report("ok", []))

    assert result.all_removed() == (fixed, dup)
    assert result.deltas[Severity.HIGH].percent_reduction is None
    assert result.deltas[Severity.CRITICAL].percent_reduction == 100.0
    assert result.percent_reduction is None
    assert comparator.format_percent(result.percent_reduction) == "N/A"
    assert "more than once" in caplog.text


@pytest.mark.parametrize(
    "before, after, expected",
    [
        (10, 0, 100.0),
        (4, 1, 75.0),
        (2, 4, -100.0),
        (0, 0, 0.0),
        (0, 3, None),
    ],
)
def test_percent_reduction(before, after, expected):
    assert comparator.percent_reduction(before, after) == expected


def test_format_percent():
    assert comparator.format_percent(None) == "N/A"
    assert comparator.format_percent(78.5714) == "78.57%"
