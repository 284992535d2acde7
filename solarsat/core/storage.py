"""Storage adapter abstractions for reports and exported products."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlparse


class StorageAdapter(ABC):
    """Abstract destination store for binary artifacts."""

    @abstractmethod
    def join(self, *parts: str) -> str:
        """Join path components into a destination URI."""

    @abstractmethod
    def write_bytes(self, uri: str, data: bytes) -> str:
        """Write bytes to the destination and return the URI."""

    @abstractmethod
    def read_bytes(self, uri: str) -> bytes:
        """Return bytes stored at *uri*."""

    def write_text(self, uri: str, text: str) -> str:
        return self.write_bytes(uri, text.encode("utf-8"))


class LocalFS(StorageAdapter):
    """Store files on the local filesystem."""

    def join(self, *parts: str) -> str:  # pragma: no cover - trivial
        return os.path.join(*parts)

    def write_bytes(self, uri: str, data: bytes) -> str:
        os.makedirs(os.path.dirname(uri) or ".", exist_ok=True)
        with open(uri, "wb") as fh:
            fh.write(data)
        return uri

    def read_bytes(self, uri: str) -> bytes:
        with open(uri, "rb") as fh:
            return fh.read()


class S3Bucket(StorageAdapter):
    """Store files in an S3-compatible bucket using boto3."""

    def __init__(self, bucket: str, client: Any | None = None) -> None:
        if client is None:
            import boto3  # type: ignore

            client = boto3.client("s3")
        self.bucket = bucket
        self.client = client

    def join(self, *parts: str) -> str:
        key = "/".join(p.strip("/") for p in parts if p)
        return f"s3://{self.bucket}/{key}"

    def _split(self, uri: str) -> tuple[str, str]:
        parsed = urlparse(uri)
        return parsed.netloc or self.bucket, parsed.path.lstrip("/")

    def write_bytes(self, uri: str, data: bytes) -> str:
        bucket, key = self._split(uri)
        self.client.put_object(Bucket=bucket, Key=key, Body=data)
        return uri

    def read_bytes(self, uri: str) -> bytes:
        bucket, key = self._split(uri)
        obj = self.client.get_object(Bucket=bucket, Key=key)
        return obj["Body"].read()
