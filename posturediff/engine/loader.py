"""Load Terraform JSON configuration into typed resource declarations."""
from __future__ import annotations

import json
import logging
import re
from collections import Counter
from typing import Any, Iterable, Mapping, Sequence

from . import types as t
from .policy_lib import PUBLIC_ACCESS_FLAGS
from .errors import ParseError
from .types import ResourceDeclaration, ResourceId, Value

LOGGER = logging.getLogger(__name__)

TYPE_ALIASES = {
    "aws_s3_bucket": t.STORAGE_BUCKET,
    "aws_s3_bucket_server_side_encryption_configuration": t.STORAGE_BUCKET_ENCRYPTION,
    "aws_s3_bucket_versioning": t.STORAGE_BUCKET_VERSIONING,
    "aws_s3_bucket_public_access_block": t.STORAGE_BUCKET_PUBLIC_ACCESS_BLOCK,
    "aws_s3_bucket_logging": t.STORAGE_BUCKET_LOGGING,
    "aws_s3_bucket_policy": t.STORAGE_BUCKET_POLICY,
    "aws_s3_bucket_lifecycle_configuration": t.STORAGE_BUCKET_LIFECYCLE,
    "aws_iam_role": t.IDENTITY_ROLE,
    "aws_iam_role_policy": t.IDENTITY_ROLE_POLICY,
    "aws_iam_user": t.IDENTITY_USER,
    "aws_iam_policy": t.IDENTITY_POLICY,
    "aws_iam_policy_attachment": t.IDENTITY_POLICY_ATTACHMENT,
    "aws_iam_role_policy_attachment": t.IDENTITY_POLICY_ATTACHMENT,
    "aws_iam_user_policy_attachment": t.IDENTITY_POLICY_ATTACHMENT,
    "aws_iam_access_key": t.IDENTITY_ACCESS_KEY,
}

POLICY_ATTRIBUTES = {
    t.IDENTITY_ROLE_POLICY: ("policy",),
    t.IDENTITY_POLICY: ("policy",),
    t.STORAGE_BUCKET_POLICY: ("policy",),
    t.IDENTITY_ROLE: ("assume_role_policy",),
}

STRING_ATTRIBUTES = ("bucket", "user", "role", "policy_arn", "name")
STRING_LIST_ATTRIBUTES = ("users", "roles", "groups")

IGNORED_BLOCKS = frozenset({"terraform", "provider", "variable", "output", "data", "locals", "module"})

_REFERENCE = re.compile(r"^\$\{\s*([A-Za-z0-9_-]+)\.([A-Za-z0-9_-]+)(?:\.[A-Za-z0-9_.\[\]\"-]+)?\s*\}$")
_EXPRESSION = re.compile(r"^\$\{.*\}$", re.DOTALL)

BOOLEAN_STRINGS = {"true": True, "false": False}

# Kinds reached from more than one provider type. Their ids carry the provider
# type so that e.g. user and role attachments may share a name.
SHARED_KINDS = frozenset(kind for kind, count in Counter(TYPE_ALIASES.values()).items() if count > 1)


def resolve_type(raw_type: str) -> str | None:
    """Map a provider resource type to its kind, or ``None`` if out of scope."""
    if raw_type in t.RESOURCE_TYPES:
        return raw_type
    return TYPE_ALIASES.get(raw_type)


def resource_id_for(raw_type: str, name: str) -> ResourceId | None:
    """Build the id for the resource declared at ``raw_type.name``."""
    kind = resolve_type(raw_type)
    if kind is None:
        return None
    if kind in SHARED_KINDS and raw_type != kind:
        return ResourceId(kind, f"{raw_type}.{name}")
    return ResourceId(kind, name)


def is_expression(value: Value) -> bool:
    """True for any ``${...}`` interpolation string, resolvable or not."""
    return isinstance(value, str) and bool(_EXPRESSION.match(value.strip()))


def parse_reference(value: Value) -> tuple[str, str] | None:
    """Return ``(raw_type, name)`` for ``${type.name[.attr]}`` strings."""
    if not isinstance(value, str):
        return None
    match = _REFERENCE.match(value.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def load(source_text: str, *, source_name: str = "<memory>") -> tuple[ResourceDeclaration, ...]:
    """Parse one configuration document into resource declarations."""
    return load_sources([(source_name, source_text)])


def load_sources(sources: Iterable[tuple[str, str]]) -> tuple[ResourceDeclaration, ...]:
    """Parse several documents as one configuration, preserving declaration order."""
    raw_blocks: list[tuple[str, str, str, Mapping[str, Value]]] = []
    for source_name, text in sources:
        document = _decode_document(text, source_name)
        raw_blocks.extend(_iter_resource_blocks(document, source_name))

    known: dict[tuple[str, str], ResourceId | None] = {}
    seen_ids: dict[ResourceId, str] = {}
    for source_name, raw_type, name, _ in raw_blocks:
        address = f"{raw_type}.{name}"
        if (raw_type, name) in known:
            raise ParseError("duplicate resource address", source_name=source_name, address=address)
        resource_id = resource_id_for(raw_type, name)
        if resource_id is not None:
            if resource_id in seen_ids:
                raise ParseError(
                    f"duplicate resource id {resource_id} (also declared as {seen_ids[resource_id]})",
                    source_name=source_name,
                    address=address,
                )
            seen_ids[resource_id] = address
        known[(raw_type, name)] = resource_id

    declarations: list[ResourceDeclaration] = []
    for source_name, raw_type, name, body in raw_blocks:
        resource_id = known[(raw_type, name)]
        address = f"{raw_type}.{name}"
        if resource_id is None:
            LOGGER.debug("Skipping out-of-scope resource %s in %s", address, source_name)
            continue
        attributes = _normalize_attributes(resource_id.type, body, source_name, address)
        references = _collect_references(attributes, known, source_name, address)
        declarations.append(
            ResourceDeclaration(
                id=resource_id,
                attributes=attributes,
                address=address,
                references=references,
            )
        )
    LOGGER.debug("Loaded %d resource declarations", len(declarations))
    return tuple(declarations)


def _decode_document(text: str, source_name: str) -> Mapping[str, Any]:
    try:
        document = json.loads(text, object_pairs_hook=_unique_keys)
    except ValueError as exc:
        raise ParseError(f"invalid JSON: {exc}", source_name=source_name) from exc
    if not isinstance(document, Mapping):
        raise ParseError("configuration document must be a JSON object", source_name=source_name)
    return document


def _unique_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"duplicate key {key!r}")
        result[key] = value
    return result


def _iter_resource_blocks(
    document: Mapping[str, Any], source_name: str
) -> Iterable[tuple[str, str, str, Mapping[str, Value]]]:
    for key in document:
        if key != "resource" and key not in IGNORED_BLOCKS:
            LOGGER.debug("Ignoring unknown top-level block %r in %s", key, source_name)
    resources = document.get("resource", {})
    groups = resources if isinstance(resources, list) else [resources]
    for group in groups:
        if not isinstance(group, Mapping):
            raise ParseError("resource block must be an object", source_name=source_name)
        for raw_type, named in group.items():
            if not isinstance(named, Mapping):
                raise ParseError(f"resources of type {raw_type} must be an object", source_name=source_name)
            for name, body in named.items():
                # Terraform JSON allows a one-element list in place of the body.
                if isinstance(body, list) and len(body) == 1:
                    body = body[0]
                if not isinstance(body, Mapping):
                    raise ParseError(
                        "resource body must be an object",
                        source_name=source_name,
                        address=f"{raw_type}.{name}",
                    )
                yield source_name, raw_type, name, body


def _normalize_attributes(
    kind: str, body: Mapping[str, Value], source_name: str, address: str
) -> dict[str, Value]:
    attributes = dict(body)
    for key in STRING_ATTRIBUTES:
        if key in attributes and not isinstance(attributes[key], str):
            raise ParseError(f"attribute {key!r} must be a string", source_name=source_name, address=address)
    for key in STRING_LIST_ATTRIBUTES:
        value = attributes.get(key)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ParseError(
                f"attribute {key!r} must be a list of strings", source_name=source_name, address=address
            )
    if kind == t.STORAGE_BUCKET_PUBLIC_ACCESS_BLOCK:
        for flag in PUBLIC_ACCESS_FLAGS:
            if flag in attributes:
                attributes[flag] = _decode_flag(attributes[flag], flag, source_name, address)
    for key in POLICY_ATTRIBUTES.get(kind, ()):
        if key in attributes:
            attributes[key] = _decode_policy(attributes[key], key, source_name, address)
    return attributes


def _decode_flag(value: Value, key: str, source_name: str, address: str) -> Value:
    # Expressions stay as written; the rule cannot prove them enabled.
    if isinstance(value, bool) or is_expression(value):
        return value
    if isinstance(value, str) and value.strip().lower() in BOOLEAN_STRINGS:
        return BOOLEAN_STRINGS[value.strip().lower()]
    raise ParseError(f"attribute {key!r} must be a boolean", source_name=source_name, address=address)


def _decode_policy(value: Value, key: str, source_name: str, address: str) -> Value:
    if isinstance(value, Mapping) or parse_reference(value):
        return value
    if not isinstance(value, str):
        raise ParseError(f"attribute {key!r} must be a policy document", source_name=source_name, address=address)
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError as exc:
        raise ParseError(f"attribute {key!r} is not valid policy JSON: {exc}", source_name=source_name, address=address) from exc
    if not isinstance(decoded, Mapping):
        raise ParseError(f"attribute {key!r} must decode to an object", source_name=source_name, address=address)
    return decoded


def _collect_references(
    attributes: Mapping[str, Value],
    known: Mapping[tuple[str, str], ResourceId | None],
    source_name: str,
    address: str,
) -> tuple[ResourceId, ...]:
    found: list[ResourceId] = []
    for value in _walk(attributes):
        ref = parse_reference(value)
        if ref is None:
            continue
        if ref[0] in ("var", "local", "data", "module", "path", "each", "count", "self"):
            continue
        if ref not in known:
            raise ParseError(f"unresolved reference {value!r}", source_name=source_name, address=address)
        target = known[ref]
        if target is not None and target not in found:
            found.append(target)
    return tuple(found)


def _walk(value: Value) -> Iterable[Value]:
    if isinstance(value, Mapping):
        for item in value.values():
            yield from _walk(item)
    elif isinstance(value, Sequence) and not isinstance(value, str):
        for item in value:
            yield from _walk(item)
    else:
        yield value


__all__ = [
    "SHARED_KINDS",
    "TYPE_ALIASES",
    "is_expression",
    "load",
    "load_sources",
    "parse_reference",
    "resolve_type",
    "resource_id_for",
]
