"""Typed value objects shared across engine modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Sequence, Union

Value = Union[str, int, float, bool, None, Sequence["Value"], Mapping[str, "Value"]]
"""Recursive attribute value decoded from configuration source."""


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @classmethod
    def ordered(cls) -> tuple["Severity", ...]:
        """Return every severity, most severe first."""
        return (cls.CRITICAL, cls.HIGH, cls.MEDIUM, cls.LOW)

    @classmethod
    def parse(cls, label: str) -> "Severity":
        try:
            return cls(label.strip().upper())
        except ValueError:
            raise ValueError(f"unknown severity: {label!r}") from None

    def at_least(self, other: "Severity") -> bool:
        return self.rank >= other.rank


_RANKS = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


STORAGE_BUCKET = "storage-bucket"
STORAGE_BUCKET_ENCRYPTION = "storage-bucket-encryption"
STORAGE_BUCKET_VERSIONING = "storage-bucket-versioning"
STORAGE_BUCKET_PUBLIC_ACCESS_BLOCK = "storage-bucket-public-access-block"
STORAGE_BUCKET_LOGGING = "storage-bucket-logging"
STORAGE_BUCKET_POLICY = "storage-bucket-policy"
STORAGE_BUCKET_LIFECYCLE = "storage-bucket-lifecycle"
IDENTITY_ROLE = "identity-role"
IDENTITY_ROLE_POLICY = "identity-role-policy"
IDENTITY_USER = "identity-user"
IDENTITY_POLICY = "identity-policy"
IDENTITY_POLICY_ATTACHMENT = "identity-policy-attachment"
IDENTITY_ACCESS_KEY = "identity-access-key"

RESOURCE_TYPES = frozenset(
    {
        STORAGE_BUCKET,
        STORAGE_BUCKET_ENCRYPTION,
        STORAGE_BUCKET_VERSIONING,
        STORAGE_BUCKET_PUBLIC_ACCESS_BLOCK,
        STORAGE_BUCKET_LOGGING,
        STORAGE_BUCKET_POLICY,
        STORAGE_BUCKET_LIFECYCLE,
        IDENTITY_ROLE,
        IDENTITY_ROLE_POLICY,
        IDENTITY_USER,
        IDENTITY_POLICY,
        IDENTITY_POLICY_ATTACHMENT,
        IDENTITY_ACCESS_KEY,
    }
)


@dataclass(frozen=True, slots=True, order=True)
class ResourceId:
    """Unique type/name pair identifying a declaration within one configuration."""

    type: str
    name: str

    def __str__(self) -> str:
        return f"{self.type}.{self.name}"


@dataclass(frozen=True, slots=True)
class ResourceDeclaration:
    """One declared resource with its decoded attributes."""

    id: ResourceId
    attributes: Mapping[str, Value] = field(default_factory=dict)
    address: str = ""
    references: tuple[ResourceId, ...] = ()

    @property
    def type(self) -> str:
        return self.id.type

    @property
    def name(self) -> str:
        return self.id.name


Predicate = Callable[[ResourceDeclaration, Any], bool]
"""Rule condition; receives the resource and the per-run reference index."""


@dataclass(frozen=True, slots=True)
class Rule:
    rule_id: str
    applies_to: tuple[str, ...]
    predicate: Predicate
    severity: Severity
    description: str = ""


@dataclass(frozen=True, slots=True)
class Finding:
    """A rule violation detected against one resource."""

    rule_id: str
    resource_id: ResourceId
    severity: Severity
    message: str = ""

    @property
    def key(self) -> tuple[str, ResourceId]:
        return (self.rule_id, self.resource_id)


@dataclass(frozen=True, slots=True)
class ScanReport:
    """Ordered findings for one configuration target."""

    target_name: str
    findings: tuple[Finding, ...] = ()
    suppressed: tuple[Finding, ...] = ()

    @property
    def severity_counts(self) -> dict[Severity, int]:
        counts = {severity: 0 for severity in Severity.ordered()}
        for finding in self.findings:
            counts[finding.severity] += 1
        return counts

    @property
    def total(self) -> int:
        return len(self.findings)

    def __iter__(self) -> Iterator[Finding]:
        return iter(self.findings)


@dataclass(frozen=True, slots=True)
class SeverityDelta:
    """Added/removed/persisting findings for a single severity level."""

    severity: Severity
    added: tuple[Finding, ...]
    removed: tuple[Finding, ...]
    persisting: tuple[Finding, ...]
    total_before: int
    total_after: int
    percent_reduction: float | None


@dataclass(frozen=True, slots=True)
class ComparisonReport:
    """Diff between two scan reports, bucketed by severity."""

    before: ScanReport
    after: ScanReport
    deltas: Mapping[Severity, SeverityDelta]
    total_before: int
    total_after: int
    percent_reduction: float | None

    @property
    def added(self) -> dict[Severity, tuple[Finding, ...]]:
        return {severity: delta.added for severity, delta in self.deltas.items()}

    @property
    def removed(self) -> dict[Severity, tuple[Finding, ...]]:
        return {severity: delta.removed for severity, delta in self.deltas.items()}

    @property
    def persisting(self) -> dict[Severity, tuple[Finding, ...]]:
        return {severity: delta.persisting for severity, delta in self.deltas.items()}

    def all_added(self) -> tuple[Finding, ...]:
        return tuple(f for delta in self.deltas.values() for f in delta.added)

    def all_removed(self) -> tuple[Finding, ...]:
        return tuple(f for delta in self.deltas.values() for f in delta.removed)

    def all_persisting(self) -> tuple[Finding, ...]:
        return tuple(f for delta in self.deltas.values() for f in delta.persisting)
