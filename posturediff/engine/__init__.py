"""Engine package: load configurations, evaluate rules, aggregate and diff findings."""

__all__ = [
    "aggregator",
    "catalog",
    "comparator",
    "errors",
    "evaluator",
    "loader",
    "metrics",
    "notifier",
    "policy_lib",
    "suppressions",
    "types",
]
