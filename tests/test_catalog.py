"""Tests for the rule catalog."""
from __future__ import annotations

import pytest

from posturediff.engine import catalog
from posturediff.engine.types import Rule, Severity


def test_default_catalog_rule_order_and_severities():
    rules = {rule.rule_id: rule.severity for rule in catalog.DEFAULT_CATALOG}
    assert catalog.DEFAULT_CATALOG.rule_ids == (
        "enc-missing",
        "versioning-missing",
        "public-access-open",
        "wildcard-action",
        "wildcard-resource",
        "admin-policy-attached",
        "hardcoded-credential",
        "missing-lifecycle",
        "missing-logging",
    )
    assert rules["enc-missing"] is Severity.HIGH
    assert rules["versioning-missing"] is Severity.MEDIUM
    assert rules["public-access-open"] is Severity.HIGH
    assert rules["wildcard-action"] is Severity.CRITICAL
    assert rules["wildcard-resource"] is Severity.CRITICAL
    assert rules["admin-policy-attached"] is Severity.CRITICAL
    assert rules["hardcoded-credential"] is Severity.HIGH
    assert rules["missing-lifecycle"] is Severity.LOW
    assert rules["missing-logging"] is Severity.MEDIUM


def test_rules_for_returns_catalog_order():
    bucket_rules = [rule.rule_id for rule in catalog.DEFAULT_CATALOG.rules_for("storage-bucket")]
    assert bucket_rules == ["enc-missing", "versioning-missing", "missing-lifecycle", "missing-logging"]

    policy_rules = [rule.rule_id for rule in catalog.DEFAULT_CATALOG.rules_for("identity-policy")]
    assert policy_rules == ["wildcard-action", "wildcard-resource"]

    assert catalog.DEFAULT_CATALOG.rules_for("storage-bucket-policy") == ()


def test_catalog_lookup_and_membership():
    assert len(catalog.DEFAULT_CATALOG) == 9
    assert "missing-logging" in catalog.DEFAULT_CATALOG
    assert catalog.DEFAULT_CATALOG.get("hardcoded-credential").applies_to == ("identity-user", "identity-role")
    with pytest.raises(KeyError):
        catalog.DEFAULT_CATALOG.get("nope")


def test_catalog_rejects_duplicate_rule_ids():
    rule = Rule("dup", ("storage-bucket",), lambda resource, index: False, Severity.LOW)
    with pytest.raises(ValueError):
        catalog.RuleCatalog([rule, rule])


def test_catalog_is_read_only():
    with pytest.raises(AttributeError):
        catalog.DEFAULT_CATALOG.extra = 1  # type: ignore[attr-defined]
    with pytest.raises(TypeError):
        catalog.DEFAULT_CATALOG._by_type["storage-bucket"] = ()  # type: ignore[index]


def test_admin_arns_from_env(monkeypatch):
    monkeypatch.setenv(catalog.ADMIN_POLICY_ARNS_ENV, " arn:aws:iam::123456789012:policy/BreakGlass , ,")
    assert catalog.admin_arns_from_env() == ["arn:aws:iam::123456789012:policy/BreakGlass"]
    monkeypatch.delenv(catalog.ADMIN_POLICY_ARNS_ENV)
    assert catalog.admin_arns_from_env() == []
