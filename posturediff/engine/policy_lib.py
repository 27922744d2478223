"""Helpers for inspecting IAM-style policy documents."""
from __future__ import annotations

import logging
import re
from typing import Iterable, Mapping, Sequence

from .types import Value

LOGGER = logging.getLogger(__name__)

PUBLIC_ACCESS_FLAGS = (
    "block_public_acls",
    "ignore_public_acls",
    "block_public_policy",
    "restrict_public_buckets",
)

DEFAULT_ADMIN_POLICY_ARNS = frozenset(
    {
        "arn:aws:iam::aws:policy/AdministratorAccess",
    }
)

ADMIN_POLICY_NAMES = frozenset({"AdministratorAccess"})

_MANAGED_POLICY_ARN = re.compile(r"^arn:aws(?:-[a-z]+)*:iam::aws:policy/(?:.+/)?([^/]+)$")


def iter_statements(policy: Value) -> Iterable[Mapping[str, Value]]:
    """Yield statements of a decoded policy document.

    A single statement mapping is accepted in place of a list. Any other shape
    raises ``TypeError`` so the caller can attribute the failure.
    """
    if policy is None:
        return []
    if not isinstance(policy, Mapping):
        raise TypeError(f"policy document must be a mapping, got {type(policy).__name__}")
    statements = policy.get("Statement", [])
    if isinstance(statements, Mapping):
        statements = [statements]
    if not isinstance(statements, Sequence) or isinstance(statements, str):
        raise TypeError(f"Statement must be a list, got {type(statements).__name__}")
    for statement in statements:
        if not isinstance(statement, Mapping):
            raise TypeError(f"statement must be a mapping, got {type(statement).__name__}")
    return statements


def allow_statements(policy: Value) -> list[Mapping[str, Value]]:
    return [stmt for stmt in iter_statements(policy) if stmt.get("Effect", "Allow") == "Allow"]


def string_list(value: Value, field_name: str) -> list[str]:
    """Normalise a string-or-list-of-strings policy field."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        items = list(value)
        for item in items:
            if not isinstance(item, str):
                raise TypeError(f"{field_name} entries must be strings, got {type(item).__name__}")
        return items
    raise TypeError(f"{field_name} must be a string or list, got {type(value).__name__}")


def is_wildcard_action(action: str) -> bool:
    """``*`` or a whole-service grant such as ``s3:*``."""
    action = action.strip()
    if action == "*":
        return True
    service, sep, verb = action.partition(":")
    return bool(sep) and bool(service) and verb == "*"


def has_wildcard_action(policy: Value) -> bool:
    for statement in allow_statements(policy):
        if any(is_wildcard_action(a) for a in string_list(statement.get("Action"), "Action")):
            return True
    return False


def has_wildcard_resource(policy: Value) -> bool:
    for statement in allow_statements(policy):
        if "*" in string_list(statement.get("Resource"), "Resource"):
            return True
    return False


def is_admin_policy_arn(arn: str, admin_arns: Iterable[str] = DEFAULT_ADMIN_POLICY_ARNS) -> bool:
    """Match configured ARNs, or an AWS managed admin policy by name in any partition."""
    arn = arn.strip()
    if arn in set(admin_arns) or arn in ADMIN_POLICY_NAMES:
        return True
    match = _MANAGED_POLICY_ARN.match(arn)
    return bool(match) and match.group(1) in ADMIN_POLICY_NAMES


__all__ = [
    "ADMIN_POLICY_NAMES",
    "DEFAULT_ADMIN_POLICY_ARNS",
    "PUBLIC_ACCESS_FLAGS",
    "allow_statements",
    "has_wildcard_action",
    "has_wildcard_resource",
    "is_admin_policy_arn",
    "is_wildcard_action",
    "iter_statements",
    "string_list",
]
