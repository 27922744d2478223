"""Command-line interface for scanning and comparing configuration targets."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

import boto3
from botocore.exceptions import BotoCoreError

from ..engine import notifier, suppressions
from ..engine.aggregator import highest_severity
from ..engine.catalog import admin_arns_from_env, build_catalog
from ..engine.errors import PostureDiffError, SourceError
from ..engine.types import ScanReport, Severity
from . import job, report, sources

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_THRESHOLD = 1
EXIT_ERROR = 2


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging(args.log_level)
    catalog = build_catalog(admin_policy_arns=admin_arns_from_env())
    suppression_list = suppressions.load_configured(local_json=args.suppressions)

    try:
        s3 = _resolve_s3(args)
        if args.command == "scan":
            scan_report = job.scan_target(
                args.target,
                catalog=catalog,
                suppression_list=suppression_list,
                s3=s3,
            )
            payload = report.scan_summary(scan_report)
            gate = scan_report
        else:
            comparison = job.compare_targets(
                args.before,
                args.after,
                catalog=catalog,
                suppression_list=suppression_list,
                s3=s3,
            )
            payload = report.comparison_summary(comparison)
            gate = comparison.after
            topic = args.sns_topic or notifier.configured_topic()
            if topic:
                notifier.publish_comparison(comparison, topic)
    except PostureDiffError as exc:
        LOGGER.debug("Scan failed", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    _emit_output(report.render(payload, fmt=args.format), args.out)
    return _exit_code(gate, args.fail_on)


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--format", choices=("json", "csv", "text"), default="json")
    common.add_argument("--out", help="Write the report to path instead of stdout", default=None)
    common.add_argument(
        "--fail-on",
        type=Severity.parse,
        default=None,
        help="Exit 1 when a finding at or above this severity remains",
    )
    common.add_argument("--suppressions", help="Path to suppressions JSON", default=None)
    common.add_argument("--profile", help="AWS profile name for s3:// targets", default=None)
    common.add_argument("--region", help="AWS region for s3:// targets", default=None)
    common.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")

    parser = argparse.ArgumentParser(
        prog="posturediff",
        description="Scan infrastructure configurations and compare their security posture",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    scan_cmd = commands.add_parser("scan", parents=[common], help="Scan one configuration target")
    scan_cmd.add_argument("target", help="File, directory or s3://bucket/prefix")
    compare_cmd = commands.add_parser("compare", parents=[common], help="Diff two configuration targets")
    compare_cmd.add_argument("before", help="Baseline target")
    compare_cmd.add_argument("after", help="Target to compare against the baseline")
    compare_cmd.add_argument("--sns-topic", help="Publish the comparison summary to this SNS topic", default=None)
    return parser


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s - %(message)s")


def _resolve_s3(args: argparse.Namespace) -> sources.S3Facade | None:
    targets = [args.target] if args.command == "scan" else [args.before, args.after]
    if not any(sources.is_s3_uri(target) for target in targets):
        return None
    try:
        session = boto3.Session(profile_name=args.profile, region_name=args.region)
    except BotoCoreError as exc:
        LOGGER.error("Failed to create AWS session: %s", exc)
        raise SourceError(f"cannot open AWS session: {exc}") from exc
    return sources.S3Facade(session)


def _emit_output(data: str, out: str | None) -> None:
    if not out:
        print(data)
        return
    target = Path(out)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(data)


def _exit_code(scan_report: ScanReport, threshold: Severity | None) -> int:
    if threshold is None:
        return EXIT_OK
    worst = highest_severity(scan_report)
    if worst is not None and worst.at_least(threshold):
        LOGGER.info("Highest remaining severity %s meets --fail-on %s", worst.value, threshold.value)
        return EXIT_THRESHOLD
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
