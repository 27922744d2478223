"""Read configuration source text from local paths or S3 prefixes."""
from __future__ import annotations

import logging
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..engine.errors import SourceError

LOGGER = logging.getLogger(__name__)

CONFIG_SUFFIX = ".tf.json"
S3_SCHEME = "s3://"


def is_s3_uri(target: str) -> bool:
    return target.startswith(S3_SCHEME)


def read_target(target: str, *, s3: S3Facade | None = None) -> list[tuple[str, str]]:
    """Return ``(name, text)`` pairs for every configuration file of ``target``."""
    if is_s3_uri(target):
        return (s3 or S3Facade()).read_prefix(target)
    return read_local(target)


def read_local(target: str) -> list[tuple[str, str]]:
    path = Path(target)
    if path.is_file():
        return [(str(path), _read_text(path))]
    if path.is_dir():
        files = sorted(p for p in path.iterdir() if p.is_file() and p.name.endswith(CONFIG_SUFFIX))
        if not files:
            raise SourceError(f"no {CONFIG_SUFFIX} files in {target}")
        LOGGER.debug("Reading %d configuration files from %s", len(files), target)
        return [(str(p), _read_text(p)) for p in files]
    raise SourceError(f"scan target {target} does not exist")


def _read_text(path: Path) -> str:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return handle.read()
    except OSError as exc:
        raise SourceError(f"cannot read {path}: {exc}") from exc


def split_s3_uri(uri: str) -> tuple[str, str]:
    remainder = uri[len(S3_SCHEME):]
    bucket, _, prefix = remainder.partition("/")
    if not bucket:
        raise SourceError(f"invalid S3 URI {uri!r}")
    return bucket, prefix


class S3Facade:
    """Thin wrapper around boto3 to simplify testing."""

    def __init__(self, session: boto3.Session | None = None):
        self._session = session or boto3.Session()
        self._s3 = self._session.client("s3")

    def read_prefix(self, uri: str) -> list[tuple[str, str]]:
        bucket, prefix = split_s3_uri(uri)
        keys = self.list_config_keys(bucket, prefix)
        if not keys:
            raise SourceError(f"no {CONFIG_SUFFIX} objects under {uri}")
        return [(f"{S3_SCHEME}{bucket}/{key}", self.get_text(bucket, key)) for key in keys]

    def list_config_keys(self, bucket: str, prefix: str) -> list[str]:
        keys: list[str] = []
        try:
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(
                    item["Key"] for item in page.get("Contents", []) if item["Key"].endswith(CONFIG_SUFFIX)
                )
        except (ClientError, BotoCoreError) as exc:
            LOGGER.error("Failed to list s3://%s/%s: %s", bucket, prefix, exc)
            raise SourceError(f"cannot list s3://{bucket}/{prefix}: {exc}") from exc
        return sorted(keys)

    def get_text(self, bucket: str, key: str) -> str:
        try:
            response = self._s3.get_object(Bucket=bucket, Key=key)
            body = response["Body"].read()
        except (ClientError, BotoCoreError) as exc:
            LOGGER.error("Failed to read s3://%s/%s: %s", bucket, key, exc)
            raise SourceError(f"cannot read s3://{bucket}/{key}: {exc}") from exc
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SourceError(f"s3://{bucket}/{key} is not UTF-8 text") from exc


__all__ = ["CONFIG_SUFFIX", "S3Facade", "is_s3_uri", "read_local", "read_target", "split_s3_uri"]
