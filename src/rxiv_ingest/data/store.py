"""Thin wrapper around the S3 source buckets."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import StoreConfig
from ..errors import TransportError

logger = logging.getLogger(__name__)

MAX_KEYS_PER_REQUEST = 1000


@dataclass(slots=True)
class ObjectSummary:
    key: str
    size: int
    last_modified: datetime


@dataclass(slots=True)
class ListPage:
    """One ``ListObjectsV2`` response."""

    objects: list[ObjectSummary]
    next_token: str | None


@dataclass(slots=True)
class ObjectMetadata:
    key: str
    size: int
    content_type: str | None
    last_modified: datetime | None


def _build_boto3_client(config: StoreConfig) -> Any:
    botocore_config = Config(
        connect_timeout=config.connect_timeout,
        read_timeout=config.read_timeout,
        max_pool_connections=config.max_pool_connections,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    return boto3.client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
        config=botocore_config,
    )


class ObjectStoreClient:
    """Read-only access to one bucket, shared by every worker of a run.

    The requester-pays flag lives on :class:`StoreConfig` and is attached to each
    request, so two clients with different settings can coexist.
    """

    def __init__(self, config: StoreConfig, *, client: Any | None = None) -> None:
        self.config = config
        self.bucket = config.bucket_name()
        self._client = client if client is not None else _build_boto3_client(config)

    def _request_args(self, **kwargs: Any) -> dict[str, Any]:
        args: dict[str, Any] = {"Bucket": self.bucket, **kwargs}
        if self.config.requester_pays:
            args["RequestPayer"] = "requester"
        return args

    @contextmanager
    def _translate_errors(self, action: str, target: str) -> Iterator[None]:
        try:
            yield
        except ClientError as exc:
            error = exc.response.get("Error", {})
            code = error.get("Code", "Unknown")
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            message = f"{action} failed for s3://{self.bucket}/{target}: {code}"
            if code in {"AccessDenied", "403"} and not self.config.requester_pays:
                message += " (the bucket may require requester-pays; enable store.requester_pays)"
            raise TransportError(message, status_code=status) from exc
        except BotoCoreError as exc:
            raise TransportError(f"{action} failed for s3://{self.bucket}/{target}: {exc}") from exc

    def list_page(
        self,
        prefix: str,
        *,
        continuation_token: str | None = None,
        max_keys: int = MAX_KEYS_PER_REQUEST,
    ) -> ListPage:
        kwargs: dict[str, Any] = {"Prefix": prefix, "MaxKeys": max_keys}
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token
        with self._translate_errors("ListObjectsV2", prefix):
            response = self._client.list_objects_v2(**self._request_args(**kwargs))
        objects = [
            ObjectSummary(
                key=item["Key"],
                size=int(item.get("Size") or 0),
                last_modified=item.get("LastModified") or datetime.now(timezone.utc),
            )
            for item in response.get("Contents", [])
            if item.get("Key")
        ]
        next_token = response.get("NextContinuationToken")
        return ListPage(objects=objects, next_token=next_token)

    def list_folders(self, prefix: str) -> list[str]:
        """Return the immediate sub-folder names under *prefix* (without slashes)."""

        folders: list[str] = []
        token: str | None = None
        while True:
            kwargs: dict[str, Any] = {
                "Prefix": prefix,
                "Delimiter": "/",
                "MaxKeys": MAX_KEYS_PER_REQUEST,
            }
            if token:
                kwargs["ContinuationToken"] = token
            with self._translate_errors("ListObjectsV2", prefix):
                response = self._client.list_objects_v2(**self._request_args(**kwargs))
            for entry in response.get("CommonPrefixes", []):
                name = entry.get("Prefix", "")[len(prefix) :].strip("/")
                if name:
                    folders.append(name)
            token = response.get("NextContinuationToken")
            if not token:
                return folders

    def head(self, key: str) -> ObjectMetadata:
        with self._translate_errors("HeadObject", key):
            response = self._client.head_object(**self._request_args(Key=key))
        return ObjectMetadata(
            key=key,
            size=int(response.get("ContentLength") or 0),
            content_type=response.get("ContentType"),
            last_modified=response.get("LastModified"),
        )

    def get_range(self, key: str, start: int, end: int) -> bytes:
        """Return bytes ``start..end`` (inclusive) of an object."""

        with self._translate_errors("GetObject", key):
            response = self._client.get_object(
                **self._request_args(Key=key, Range=f"bytes={start}-{end}")
            )
            return response["Body"].read()

    def get_bytes(self, key: str) -> bytes:
        with self._translate_errors("GetObject", key):
            response = self._client.get_object(**self._request_args(Key=key))
            return response["Body"].read()

    def download(self, key: str, target: Path) -> Path:
        """Download an object to *target* through a ``.download`` partial file."""

        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".download")
        extra_args = {"RequestPayer": "requester"} if self.config.requester_pays else None
        logger.debug("Downloading s3://%s/%s to %s", self.bucket, key, target)
        with self._translate_errors("Download", key):
            self._client.download_file(self.bucket, key, str(partial), ExtraArgs=extra_args)
        partial.replace(target)
        return target


__all__ = [
    "MAX_KEYS_PER_REQUEST",
    "ListPage",
    "ObjectMetadata",
    "ObjectStoreClient",
    "ObjectSummary",
]
