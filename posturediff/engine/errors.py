"""Exception hierarchy raised by the scan pipeline."""
from __future__ import annotations

from .types import ResourceId


class PostureDiffError(Exception):
    """Base class for all pipeline failures."""


class ParseError(PostureDiffError):
    """Configuration source is malformed, ambiguous or inconsistent."""

    def __init__(self, message: str, *, source_name: str = "<memory>", address: str | None = None):
        self.source_name = source_name
        self.address = address
        location = f"{source_name}:{address}" if address else source_name
        super().__init__(f"{location}: {message}")


class EvaluationError(PostureDiffError):
    """A rule predicate could not be evaluated against a resource."""

    def __init__(self, rule_id: str, resource_id: ResourceId, reason: str):
        self.rule_id = rule_id
        self.resource_id = resource_id
        self.reason = reason
        super().__init__(f"rule {rule_id} failed on {resource_id}: {reason}")


class ComparisonError(PostureDiffError):
    """Two reports cannot be meaningfully compared."""


class SourceError(PostureDiffError):
    """A scan target could not be read."""
