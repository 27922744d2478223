"""Suppression loading and matching tests."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from posturediff.engine import suppressions
from posturediff.engine.types import Finding, ResourceId, Severity

NOW = datetime(2025, 10, 21, tzinfo=timezone.utc)


def _clear_caches(monkeypatch):
    suppressions._fetch_ssm_entries.cache_clear()  # type: ignore[attr-defined]
    suppressions._read_local_entries.cache_clear()  # type: ignore[attr-defined]
    monkeypatch.setenv(suppressions.SUPPRESSIONS_SSM_PARAM_ENV, "")
    monkeypatch.setenv(suppressions.SUPPRESSIONS_LOCAL_JSON_ENV, "")


def _finding(rule_id: str, name: str) -> Finding:
    return Finding(rule_id=rule_id, resource_id=ResourceId("storage-bucket", name), severity=Severity.LOW)


def test_load_from_dict_skips_malformed_entries():
    entries = suppressions.load_from_dict(
        {
            "suppressions": [
                {"rule_id": "missing-lifecycle", "resource": "storage-bucket.logs", "until": "2999-01-01", "reason": "ttl"},
                {"rule_id": "missing-logging"},
                {"resource": "storage-bucket.x"},
                {"rule_id": "enc-missing", "until": "not-a-date"},
                "garbage",
            ]
        }
    )

    assert [(e.rule_id, e.resource) for e in entries] == [
        ("missing-lifecycle", "storage-bucket.logs"),
        ("missing-logging", "*"),
    ]
    assert entries[0].expires_at == datetime(2999, 1, 1, 23, 59, 59, tzinfo=timezone.utc)
    assert entries[1].expires_at is None


def test_apply_respects_resource_and_expiry():
    entries = [
        suppressions.Suppression("missing-lifecycle", "storage-bucket.logs", None, "archive"),
        suppressions.Suppression("missing-logging", "*", datetime(2020, 1, 1, tzinfo=timezone.utc)),
    ]
    findings = [
        _finding("missing-lifecycle", "logs"),
        _finding("missing-lifecycle", "data"),
        _finding("missing-logging", "logs"),
    ]

    kept, suppressed = suppressions.apply(findings, entries, now=NOW)

    assert [str(f.resource_id) for f in suppressed] == ["storage-bucket.logs"]
    assert [(f.rule_id, f.resource_id.name) for f in kept] == [
        ("missing-lifecycle", "data"),
        ("missing-logging", "logs"),
    ]


def test_iso_timestamps_are_accepted():
    (entry,) = suppressions.load_from_dict(
        {"suppressions": [{"rule_id": "enc-missing", "until": "2025-10-21T12:00:00+00:00"}]}
    )
    assert entry.is_active(NOW)
    assert not entry.is_active(datetime(2025, 10, 22, tzinfo=timezone.utc))


def test_local_json_source(monkeypatch, tmp_path):
    _clear_caches(monkeypatch)
    path = tmp_path / "suppressions.json"
    path.write_text(json.dumps({"suppressions": [{"rule_id": "missing-logging", "resource": "*"}]}))
    monkeypatch.setenv(suppressions.SUPPRESSIONS_LOCAL_JSON_ENV, str(path))

    entries = suppressions.load_configured()

    assert [e.rule_id for e in entries] == ["missing-logging"]


def test_missing_or_invalid_local_file_yields_nothing(monkeypatch, tmp_path):
    _clear_caches(monkeypatch)
    assert suppressions.load_configured(local_json=str(tmp_path / "absent.json")) == []
    broken = tmp_path / "broken.json"
    broken.write_text("{nope")
    assert suppressions.load_configured(local_json=str(broken)) == []


def test_ssm_parameter_source(monkeypatch):
    boto3 = pytest.importorskip("boto3")
    pytest.importorskip("moto")
    from moto import mock_aws

    _clear_caches(monkeypatch)
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    payload = {"suppressions": [{"rule_id": "enc-missing", "resource": "storage-bucket.legacy", "reason": "migrating"}]}
    with mock_aws():
        ssm = boto3.client("ssm", region_name="us-east-1")
        ssm.put_parameter(Name="/posturediff/suppressions", Value=json.dumps(payload), Type="String")
        monkeypatch.setenv(suppressions.SUPPRESSIONS_SSM_PARAM_ENV, "/posturediff/suppressions")

        entries = suppressions.load_configured()
        missing = suppressions._fetch_ssm_entries("/posturediff/absent")

    assert [(e.rule_id, e.resource, e.reason) for e in entries] == [
        ("enc-missing", "storage-bucket.legacy", "migrating"),
    ]
    assert missing == []
