"""Durable storage for scenario payloads and finished result grids."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol


class ObjectStorage(Protocol):
    """Put/get of named byte blobs."""

    def put(self, key: str, data: bytes, content_type: str | None = None) -> str:
        """Store ``data`` under ``key`` and return a locator for it."""

    def get(self, key: str) -> bytes: ...


class LocalFileStorage:
    """Keeps blobs as files below a root directory (offline mode and tests)."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def _path(self, key: str) -> Path:
        candidate = (self.root / key).resolve()
        if not candidate.is_relative_to(self.root):
            raise ValueError(f"invalid storage key: {key}")
        return candidate

    def put(self, key: str, data: bytes, content_type: str | None = None) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return str(path)

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise KeyError(key)
        return path.read_bytes()


class S3Storage:
    """Blob storage in an S3 bucket."""

    def __init__(self, bucket: str, *, region: str | None = None, client: Any | None = None) -> None:
        if client is None:
            import boto3

            client = boto3.client("s3", region_name=region)
        self.bucket = bucket
        self._client = client

    def put(self, key: str, data: bytes, content_type: str | None = None) -> str:
        extra: dict[str, Any] = {}
        if content_type:
            extra["ContentType"] = content_type
        self._client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        return f"s3://{self.bucket}/{key}"

    def get(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=key)
        return response["Body"].read()


__all__ = ["LocalFileStorage", "ObjectStorage", "S3Storage"]
