"""Apply the rule catalog to loaded resources and collect findings."""
from __future__ import annotations

import logging
from typing import Mapping, Sequence

from . import types as t
from .catalog import RuleCatalog
from .errors import EvaluationError
from .loader import parse_reference, resource_id_for
from .types import Finding, ResourceDeclaration, ResourceId

LOGGER = logging.getLogger(__name__)

# Attribute on a dependent resource -> kind of resource it points at, and the
# attribute on that target holding its literal name.
LINK_ATTRIBUTES = {
    "bucket": (t.STORAGE_BUCKET, "bucket"),
    "user": (t.IDENTITY_USER, "name"),
    "role": (t.IDENTITY_ROLE, "name"),
}


class ReferenceIndex:
    """Lookup from a target resource id to the resources that point at it.

    Built once per evaluation run. A dependent resource points at a target
    either through a ``${type.name.attr}`` reference or by repeating the
    target's literal name.
    """

    def __init__(self, resources: Sequence[ResourceDeclaration]):
        known = {resource.id for resource in resources}
        by_literal: dict[tuple[str, str], ResourceId] = {}
        for resource in resources:
            for kind, name_attr in LINK_ATTRIBUTES.values():
                if resource.type != kind:
                    continue
                literal = resource.attributes.get(name_attr)
                if isinstance(literal, str) and not parse_reference(literal):
                    by_literal.setdefault((kind, literal), resource.id)

        referrers: dict[ResourceId, list[ResourceDeclaration]] = {}
        linked: set[tuple[ResourceId, ResourceId]] = set()
        for resource in resources:
            for attribute, (kind, _) in LINK_ATTRIBUTES.items():
                target = _link_target(resource.attributes.get(attribute), kind, known, by_literal)
                if target is None or target == resource.id:
                    continue
                if (target, resource.id) in linked:
                    continue
                linked.add((target, resource.id))
                referrers.setdefault(target, []).append(resource)
        self._referrers: Mapping[ResourceId, tuple[ResourceDeclaration, ...]] = {
            key: tuple(value) for key, value in referrers.items()
        }

    def referrers(self, target: ResourceId, resource_type: str | None = None) -> tuple[ResourceDeclaration, ...]:
        found = self._referrers.get(target, ())
        if resource_type is None:
            return found
        return tuple(resource for resource in found if resource.type == resource_type)


def _link_target(
    value: object,
    kind: str,
    known: set[ResourceId],
    by_literal: Mapping[tuple[str, str], ResourceId],
) -> ResourceId | None:
    if not isinstance(value, str):
        return None
    ref = parse_reference(value)
    if ref is not None:
        candidate = resource_id_for(*ref)
        return candidate if candidate in known and candidate.type == kind else None
    return by_literal.get((kind, value))


def evaluate(resources: Sequence[ResourceDeclaration], catalog: RuleCatalog) -> tuple[Finding, ...]:
    """Evaluate every applicable rule against every resource, in order."""
    index = ReferenceIndex(resources)
    findings: list[Finding] = []
    for resource in resources:
        for rule in catalog.rules_for(resource.type):
            try:
                matched = rule.predicate(resource, index)
            except (TypeError, ValueError, KeyError, AttributeError) as exc:
                LOGGER.error("Rule %s failed on %s: %s", rule.rule_id, resource.id, exc)
                raise EvaluationError(rule.rule_id, resource.id, str(exc)) from exc
            if not isinstance(matched, bool):
                raise EvaluationError(rule.rule_id, resource.id, f"predicate returned {type(matched).__name__}")
            if matched:
                LOGGER.debug("Rule %s matched %s", rule.rule_id, resource.id)
                findings.append(
                    Finding(
                        rule_id=rule.rule_id,
                        resource_id=resource.id,
                        severity=rule.severity,
                        message=rule.description,
                    )
                )
    return tuple(findings)


__all__ = ["LINK_ATTRIBUTES", "ReferenceIndex", "evaluate"]
