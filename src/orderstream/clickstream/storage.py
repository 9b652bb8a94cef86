"""Object storage for the buffered batch sink."""

from __future__ import annotations

import hashlib
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from orderstream.core.errors import ErrorCategory, PermanentError, RetryableError
from orderstream.core.logging import get_logger

logger = get_logger(__name__)

_PERMANENT_CODES = frozenset({"AccessDenied", "NoSuchBucket", "InvalidBucketName", "InvalidArgument"})


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size_bytes: int
    content_type: str | None = None
    content_encoding: str | None = None
    last_modified: datetime | None = None
    checksum: str | None = None


class ObjectStore(ABC):
    """Write-once object storage."""

    @abstractmethod
    def put(
        self,
        key: str,
        body: bytes,
        content_type: str | None = None,
        content_encoding: str | None = None,
    ) -> ObjectInfo:
        """Store ``body`` under ``key``, replacing any previous object."""
        ...

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Read an object. Raises ``FileNotFoundError`` if missing."""
        ...

    @abstractmethod
    def list(self, prefix: str = "") -> Iterator[ObjectInfo]:
        ...


class MemoryObjectStore(ObjectStore):
    """Thread-safe in-memory store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: dict[str, tuple[bytes, ObjectInfo]] = {}

    def put(
        self,
        key: str,
        body: bytes,
        content_type: str | None = None,
        content_encoding: str | None = None,
    ) -> ObjectInfo:
        key = key.lstrip("/")
        info = ObjectInfo(
            key=key,
            size_bytes=len(body),
            content_type=content_type,
            content_encoding=content_encoding,
            last_modified=datetime.now(UTC),
            checksum=hashlib.sha256(body).hexdigest(),
        )
        with self._lock:
            self._objects[key] = (bytes(body), info)
        return info

    def get(self, key: str) -> bytes:
        with self._lock:
            entry = self._objects.get(key.lstrip("/"))
        if entry is None:
            raise FileNotFoundError(f"Object not found: {key}")
        return entry[0]

    def list(self, prefix: str = "") -> Iterator[ObjectInfo]:
        prefix = prefix.lstrip("/")
        with self._lock:
            infos = [info for key, (_, info) in sorted(self._objects.items()) if key.startswith(prefix)]
        yield from infos

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)


class S3ObjectStore(ObjectStore):
    """
    S3-compatible object storage.

    Works with AWS S3, MinIO and LocalStack; the client comes from the
    client registry so endpoint and region follow the settings.
    """

    def __init__(self, client: Any, bucket: str) -> None:
        if not bucket:
            raise ValueError("bucket must be non-empty")
        self.client = client
        self.bucket = bucket

    def put(
        self,
        key: str,
        body: bytes,
        content_type: str | None = None,
        content_encoding: str | None = None,
    ) -> ObjectInfo:
        key = key.lstrip("/")

        extra_args: dict[str, str] = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if content_encoding:
            extra_args["ContentEncoding"] = content_encoding

        try:
            response = self.client.put_object(Bucket=self.bucket, Key=key, Body=body, **extra_args)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code in _PERMANENT_CODES:
                raise PermanentError(
                    f"S3 rejected {key}: {code}", category=ErrorCategory.STORAGE, cause=e
                ) from e
            raise RetryableError(
                f"S3 put failed for {key}: {code}", category=ErrorCategory.STORAGE, cause=e
            ) from e
        except BotoCoreError as e:
            raise RetryableError(
                f"S3 transport error for {key}: {e}", category=ErrorCategory.STORAGE, cause=e
            ) from e

        logger.info("storage.object_written", bucket=self.bucket, key=key, size=len(body))
        return ObjectInfo(
            key=key,
            size_bytes=len(body),
            content_type=content_type,
            content_encoding=content_encoding,
            last_modified=datetime.now(UTC),
            checksum=response.get("ETag", "").strip('"') or None,
        )

    def get(self, key: str) -> bytes:
        key = key.lstrip("/")
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                raise FileNotFoundError(f"Object not found: {key}") from e
            raise
        return response["Body"].read()

    def list(self, prefix: str = "") -> Iterator[ObjectInfo]:
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix.lstrip("/")):
            for obj in page.get("Contents", []):
                yield ObjectInfo(
                    key=obj["Key"],
                    size_bytes=obj["Size"],
                    last_modified=obj.get("LastModified"),
                )


__all__ = ["ObjectInfo", "ObjectStore", "MemoryObjectStore", "S3ObjectStore"]
