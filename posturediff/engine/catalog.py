"""The fixed security rule catalog evaluated against resource declarations."""
from __future__ import annotations

import logging
import os
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, Iterator, Mapping, Sequence

from . import policy_lib
from . import types as t
from .loader import is_expression, parse_reference
from .types import Predicate, ResourceDeclaration, Rule, Severity, Value

if TYPE_CHECKING:  # pragma: no cover
    from .evaluator import ReferenceIndex

LOGGER = logging.getLogger(__name__)

ADMIN_POLICY_ARNS_ENV = "POSTUREDIFF_ADMIN_POLICY_ARNS"

VERSIONING_ENABLED = "Enabled"


class RuleCatalog:
    """Immutable, ordered collection of rules indexed by resource type."""

    __slots__ = ("_rules", "_by_id", "_by_type")

    def __init__(self, rules: Iterable[Rule]):
        ordered = tuple(rules)
        by_id: dict[str, Rule] = {}
        by_type: dict[str, list[Rule]] = {}
        for rule in ordered:
            if rule.rule_id in by_id:
                raise ValueError(f"duplicate rule id {rule.rule_id}")
            by_id[rule.rule_id] = rule
            for resource_type in rule.applies_to:
                by_type.setdefault(resource_type, []).append(rule)
        self._rules = ordered
        self._by_id = MappingProxyType(by_id)
        self._by_type = MappingProxyType({key: tuple(value) for key, value in by_type.items()})

    def rules_for(self, resource_type: str) -> tuple[Rule, ...]:
        """Return rules applying to ``resource_type`` in catalog order."""
        return self._by_type.get(resource_type, ())

    def get(self, rule_id: str) -> Rule:
        return self._by_id[rule_id]

    @property
    def rule_ids(self) -> tuple[str, ...]:
        return tuple(rule.rule_id for rule in self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id


def _encryption_missing(resource: ResourceDeclaration, index: ReferenceIndex) -> bool:
    return not index.referrers(resource.id, t.STORAGE_BUCKET_ENCRYPTION)


def _versioning_missing(resource: ResourceDeclaration, index: ReferenceIndex) -> bool:
    return not any(_versioning_enabled(r) for r in index.referrers(resource.id, t.STORAGE_BUCKET_VERSIONING))


def _versioning_enabled(versioning: ResourceDeclaration) -> bool:
    block = versioning.attributes.get("versioning_configuration")
    if block is None:
        return False
    if isinstance(block, Mapping):
        block = [block]
    if not isinstance(block, Sequence) or isinstance(block, str):
        raise TypeError(f"versioning_configuration must be a block, got {type(block).__name__}")
    for entry in block:
        if not isinstance(entry, Mapping):
            raise TypeError(f"versioning_configuration entries must be blocks, got {type(entry).__name__}")
        if entry.get("status") == VERSIONING_ENABLED:
            return True
    return False


def _public_access_open(resource: ResourceDeclaration, index: ReferenceIndex) -> bool:
    for flag in policy_lib.PUBLIC_ACCESS_FLAGS:
        if is_expression(resource.attributes.get(flag)):
            LOGGER.debug("Flag %s of %s is an unresolved expression; treating as disabled", flag, resource.id)
    return any(resource.attributes.get(flag) is not True for flag in policy_lib.PUBLIC_ACCESS_FLAGS)


def _inline_policy(resource: ResourceDeclaration) -> Value:
    policy = resource.attributes.get("policy")
    if parse_reference(policy):
        LOGGER.debug("Policy of %s is an unresolved expression; skipping", resource.id)
        return None
    return policy


def _wildcard_action(resource: ResourceDeclaration, index: ReferenceIndex) -> bool:
    return policy_lib.has_wildcard_action(_inline_policy(resource))


def _wildcard_resource(resource: ResourceDeclaration, index: ReferenceIndex) -> bool:
    return policy_lib.has_wildcard_resource(_inline_policy(resource))


def _admin_attached(admin_arns: frozenset[str]) -> Predicate:
    def predicate(resource: ResourceDeclaration, index: ReferenceIndex) -> bool:
        arn = resource.attributes.get("policy_arn")
        if arn is None:
            return False
        if not isinstance(arn, str):
            raise TypeError(f"policy_arn must be a string, got {type(arn).__name__}")
        return policy_lib.is_admin_policy_arn(arn, admin_arns)

    return predicate


def _access_key_issued(resource: ResourceDeclaration, index: ReferenceIndex) -> bool:
    return bool(index.referrers(resource.id, t.IDENTITY_ACCESS_KEY))


def _lifecycle_missing(resource: ResourceDeclaration, index: ReferenceIndex) -> bool:
    return not index.referrers(resource.id, t.STORAGE_BUCKET_LIFECYCLE)


def _logging_missing(resource: ResourceDeclaration, index: ReferenceIndex) -> bool:
    return not index.referrers(resource.id, t.STORAGE_BUCKET_LOGGING)


def build_catalog(*, admin_policy_arns: Iterable[str] | None = None) -> RuleCatalog:
    """Construct the rule catalog; call once at startup and pass it around."""
    admin_arns = frozenset(policy_lib.DEFAULT_ADMIN_POLICY_ARNS) | frozenset(
        arn.strip() for arn in (admin_policy_arns or ()) if arn.strip()
    )
    policy_types = (t.IDENTITY_ROLE_POLICY, t.IDENTITY_POLICY)
    return RuleCatalog(
        [
            Rule(
                rule_id="enc-missing",
                applies_to=(t.STORAGE_BUCKET,),
                predicate=_encryption_missing,
                severity=Severity.HIGH,
                description="Bucket has no server-side encryption configuration",
            ),
            Rule(
                rule_id="versioning-missing",
                applies_to=(t.STORAGE_BUCKET,),
                predicate=_versioning_missing,
                severity=Severity.MEDIUM,
                description="Bucket versioning is not enabled",
            ),
            Rule(
                rule_id="public-access-open",
                applies_to=(t.STORAGE_BUCKET_PUBLIC_ACCESS_BLOCK,),
                predicate=_public_access_open,
                severity=Severity.HIGH,
                description="Public access block leaves at least one flag disabled",
            ),
            Rule(
                rule_id="wildcard-action",
                applies_to=policy_types,
                predicate=_wildcard_action,
                severity=Severity.CRITICAL,
                description="Policy allows wildcard actions",
            ),
            Rule(
                rule_id="wildcard-resource",
                applies_to=policy_types,
                predicate=_wildcard_resource,
                severity=Severity.CRITICAL,
                description="Policy allows actions on every resource",
            ),
            Rule(
                rule_id="admin-policy-attached",
                applies_to=(t.IDENTITY_POLICY_ATTACHMENT,),
                predicate=_admin_attached(admin_arns),
                severity=Severity.CRITICAL,
                description="Administrator access policy attached to a principal",
            ),
            Rule(
                rule_id="hardcoded-credential",
                applies_to=(t.IDENTITY_USER, t.IDENTITY_ROLE),
                predicate=_access_key_issued,
                severity=Severity.HIGH,
                description="Long-lived access key generated for principal",
            ),
            Rule(
                rule_id="missing-lifecycle",
                applies_to=(t.STORAGE_BUCKET,),
                predicate=_lifecycle_missing,
                severity=Severity.LOW,
                description="Bucket has no lifecycle configuration",
            ),
            Rule(
                rule_id="missing-logging",
                applies_to=(t.STORAGE_BUCKET,),
                predicate=_logging_missing,
                severity=Severity.MEDIUM,
                description="Bucket access logging is not configured",
            ),
        ]
    )


def admin_arns_from_env() -> list[str]:
    raw = os.getenv(ADMIN_POLICY_ARNS_ENV, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


DEFAULT_CATALOG = build_catalog()


__all__ = [
    "ADMIN_POLICY_ARNS_ENV",
    "DEFAULT_CATALOG",
    "RuleCatalog",
    "admin_arns_from_env",
    "build_catalog",
]
