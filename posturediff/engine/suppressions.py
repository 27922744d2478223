"""Time-boxed suppressions for accepted findings."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, time, timezone
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Mapping, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .types import Finding

LOGGER = logging.getLogger(__name__)

SUPPRESSIONS_SSM_PARAM_ENV = "POSTUREDIFF_SUPPRESSIONS_SSM_PARAM"
SUPPRESSIONS_LOCAL_JSON_ENV = "POSTUREDIFF_SUPPRESSIONS_JSON"
ANY_RESOURCE = "*"


@dataclass(frozen=True, slots=True)
class Suppression:
    rule_id: str
    resource: str
    expires_at: datetime | None
    reason: str | None = None

    def is_active(self, now: datetime) -> bool:
        if self.expires_at is None:
            return True
        return now <= self.expires_at

    def matches(self, finding: Finding) -> bool:
        if finding.rule_id != self.rule_id:
            return False
        return self.resource == ANY_RESOURCE or self.resource == str(finding.resource_id)


def apply(
    findings: Iterable[Finding],
    suppressions: Sequence[Suppression],
    now: datetime | None = None,
) -> tuple[tuple[Finding, ...], tuple[Finding, ...]]:
    """Split findings into ``(kept, suppressed)`` preserving order."""
    now = now or datetime.now(timezone.utc)
    active = [entry for entry in suppressions if entry.is_active(now)]
    kept: list[Finding] = []
    suppressed: list[Finding] = []
    for finding in findings:
        entry = next((s for s in active if s.matches(finding)), None)
        if entry is None:
            kept.append(finding)
            continue
        LOGGER.info("Suppressed %s on %s (%s)", finding.rule_id, finding.resource_id, entry.reason or "no reason")
        suppressed.append(finding)
    return tuple(kept), tuple(suppressed)


def load_configured(ssm_param: str | None = None, local_json: str | None = None) -> list[Suppression]:
    """Collect suppressions from SSM Parameter Store and the local JSON file.

    Sources, in order:
      1. SSM parameter named by POSTUREDIFF_SUPPRESSIONS_SSM_PARAM
      2. Local JSON file named by POSTUREDIFF_SUPPRESSIONS_JSON
    """
    entries = list(_load_ssm_entries(ssm_param))
    entries.extend(_load_local_entries(local_json))
    return entries


def load_from_ssm(parameter_value: str) -> Sequence[Suppression]:
    """Parse an SSM parameter payload into suppression entries."""
    try:
        payload = json.loads(parameter_value)
    except json.JSONDecodeError as exc:
        LOGGER.error("Failed to decode SSM suppressions: %s", exc)
        return []
    return load_from_dict(payload)


def load_from_dict(payload: Mapping[str, object]) -> Sequence[Suppression]:
    entries = []
    for item in payload.get("suppressions", []):
        if not isinstance(item, Mapping):
            continue
        rule_id = str(item.get("rule_id") or "").strip()
        resource = str(item.get("resource") or ANY_RESOURCE).strip()
        until_raw = item.get("until")
        reason = item.get("reason")
        if not rule_id:
            LOGGER.debug("Skipping malformed suppression entry: %s", item)
            continue
        expires_at = None
        if until_raw:
            expires_at = _parse_until(str(until_raw))
            if expires_at is None:
                LOGGER.warning("Invalid until value for suppression %s/%s", rule_id, resource)
                continue
        entries.append(
            Suppression(
                rule_id=rule_id,
                resource=resource,
                expires_at=expires_at,
                reason=str(reason) if reason else None,
            )
        )
    return entries


def _load_ssm_entries(param_name: str | None = None) -> Sequence[Suppression]:
    if param_name is None:
        param_name = os.getenv(SUPPRESSIONS_SSM_PARAM_ENV, "")
    if not param_name:
        return []
    return _fetch_ssm_entries(param_name)


@lru_cache(maxsize=4)
def _fetch_ssm_entries(param_name: str) -> Sequence[Suppression]:
    client = boto3.client("ssm")
    try:
        response = client.get_parameter(Name=param_name, WithDecryption=False)
    except ClientError as exc:
        LOGGER.warning("SSM parameter %s not found: %s", param_name, exc)
        return []
    except BotoCoreError as exc:
        LOGGER.error("Failed to retrieve SSM parameter %s: %s", param_name, exc)
        return []
    return load_from_ssm(response["Parameter"]["Value"])


def _load_local_entries(path: str | None = None) -> Sequence[Suppression]:
    if path is None:
        path = os.getenv(SUPPRESSIONS_LOCAL_JSON_ENV, "")
    if not path:
        return []
    return _read_local_entries(path)


@lru_cache(maxsize=4)
def _read_local_entries(path: str) -> Sequence[Suppression]:
    file_path = Path(path)
    if not file_path.exists():
        LOGGER.warning("Suppression file %s not found", path)
        return []
    try:
        payload = json.loads(file_path.read_text())
    except json.JSONDecodeError as exc:
        LOGGER.error("Invalid suppression JSON at %s: %s", path, exc)
        return []
    return load_from_dict(payload)


def _parse_until(value: str) -> datetime | None:
    value = value.strip()
    try:
        if len(value) == 10:  # YYYY-MM-DD
            dt = datetime.fromisoformat(value)
            dt = datetime.combine(dt, time(hour=23, minute=59, second=59))
        else:
            dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


__all__ = [
    "Suppression",
    "apply",
    "load_configured",
    "load_from_dict",
    "load_from_ssm",
]
