"""Formats and publishes SNS notifications for comparison outcomes."""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .comparator import format_percent
from .types import ComparisonReport, Finding

LOGGER = logging.getLogger(__name__)
SNS_TOPIC_ENV = "POSTUREDIFF_SNS_TOPIC"
LEGACY_TOPIC_ENV = "SNS_TOPIC_ARN"


def configured_topic() -> str | None:
    return os.getenv(SNS_TOPIC_ENV) or os.getenv(LEGACY_TOPIC_ENV) or None


def publish(topic_arn: str | None, subject: str, summary_dict: Mapping[str, Any]) -> None:
    """Publish the provided summary payload to the configured SNS topic."""
    message = json.dumps(dict(summary_dict), default=str, ensure_ascii=False)
    LOGGER.info("Publishing comparison summary subject=%s", subject)
    LOGGER.debug("Comparison payload: %s", message)

    if not topic_arn:
        LOGGER.warning("SNS topic not configured; skipping publish")
        return

    client = boto3.client("sns")
    try:
        client.publish(
            TopicArn=topic_arn,
            Message=message,
            Subject=subject[:100],  # SNS limits subjects to 100 characters
        )
    except (BotoCoreError, ClientError) as exc:
        LOGGER.error("Failed to publish comparison summary: %s", exc)


def publish_comparison(report: ComparisonReport, topic_arn: str | None = None) -> None:
    """Serialize a ComparisonReport and publish it to SNS."""
    topic_arn = topic_arn or configured_topic()
    publish(topic_arn, render_subject(report), _format_summary(report))


def render_subject(report: ComparisonReport) -> str:
    reduction = format_percent(report.percent_reduction)
    return f"[PostureDiff] {report.before.target_name} -> {report.after.target_name} :: {reduction}"


def _format_summary(report: ComparisonReport) -> dict[str, Any]:
    return {
        "before": report.before.target_name,
        "after": report.after.target_name,
        "total_before": report.total_before,
        "total_after": report.total_after,
        "percent_reduction": format_percent(report.percent_reduction),
        "severities": {
            severity.value: {
                "before": delta.total_before,
                "after": delta.total_after,
                "added": len(delta.added),
                "removed": len(delta.removed),
                "persisting": len(delta.persisting),
            }
            for severity, delta in report.deltas.items()
        },
        "added": [_finding_ref(finding) for finding in report.all_added()],
    }


def _finding_ref(finding: Finding) -> dict[str, str]:
    return {
        "rule_id": finding.rule_id,
        "resource": str(finding.resource_id),
        "severity": finding.severity.value,
    }
