"""
Blob storage abstraction for S3-compatible buckets, the local filesystem and
in-memory testing.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from postboard.errors import BlobWriteError

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_BASE_URL = "https://storage.googleapis.com"
COPY_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class BlobInfo:
    name: str
    updated_at: datetime


class BlobStore(Protocol):
    """Defines the operations the service needs from object storage."""

    def upload(self, name: str, stream: BinaryIO, content_type: Optional[str] = None) -> str:
        ...

    def list_blobs(self) -> List[BlobInfo]:
        ...

    def delete(self, name: str) -> None:
        ...

    def close(self) -> None:
        ...


@dataclass
class InMemoryBlobStore:
    """Test double for blob storage."""

    base_url: str = "https://example.test/blobs"
    objects: Dict[str, bytes] = field(default_factory=dict)
    updated: Dict[str, datetime] = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    def upload(self, name: str, stream: BinaryIO, content_type: Optional[str] = None) -> str:
        try:
            data = stream.read()
        except (OSError, ValueError) as exc:
            raise BlobWriteError(f"Copy error, {exc}") from exc
        with self._lock:
            self.objects[name] = data
            self.updated[name] = datetime.now(timezone.utc)
        return self.address_for(name)

    def address_for(self, name: str) -> str:
        return f"{self.base_url}/{name}"

    def get_bytes(self, name: str) -> bytes:
        stored = self.objects.get(name)
        if stored is None:
            raise FileNotFoundError(name)
        return stored

    def list_blobs(self) -> List[BlobInfo]:
        with self._lock:
            return [BlobInfo(name, self.updated[name]) for name in self.objects]

    def delete(self, name: str) -> None:
        with self._lock:
            self.objects.pop(name, None)
            self.updated.pop(name, None)

    def close(self) -> None:
        pass


class LocalBlobStore:
    """
    Filesystem-backed blob store. Blobs are written to a temporary file in the
    same directory and renamed into place, so a reader never sees a partial
    blob.
    """

    def __init__(self, root: str, url_prefix: str = "/blobs"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise BlobWriteError(f"Invalid object name {name!r}")
        return self.root / name

    def upload(self, name: str, stream: BinaryIO, content_type: Optional[str] = None) -> str:
        target = self._path(name)
        fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as out:
                while True:
                    chunk = stream.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    out.write(chunk)
                out.flush()
                os.fsync(out.fileno())
            os.replace(tmp_path, target)
        except (OSError, ValueError) as exc:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise BlobWriteError(f"Copy error, {exc}") from exc
        return f"{self.url_prefix}/{name}"

    def get_bytes(self, name: str) -> bytes:
        return self._path(name).read_bytes()

    def list_blobs(self) -> List[BlobInfo]:
        blobs = []
        for path in self.root.iterdir():
            if path.name.startswith(".") or not path.is_file():
                continue
            mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            blobs.append(BlobInfo(path.name, mtime))
        return blobs

    def delete(self, name: str) -> None:
        try:
            self._path(name).unlink()
        except FileNotFoundError:
            pass

    def close(self) -> None:
        pass


@dataclass
class S3BlobStore:
    """
    S3-compatible blob store. Works against AWS S3 and against Google Cloud
    Storage through its XML interoperability endpoint.
    """

    bucket: str
    endpoint: Optional[str] = None
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    public_base_url: Optional[str] = None
    timeout: float = 60.0

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
            connect_timeout=self.timeout,
            read_timeout=self.timeout,
            retries={"total_max_attempts": 1},
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )
        # Total deadline per upload; the client timeouts only bound each socket
        # operation.
        self._uploads = ThreadPoolExecutor(thread_name_prefix="s3-upload")

    def address_for(self, name: str) -> str:
        base = (self.public_base_url or self.endpoint or DEFAULT_PUBLIC_BASE_URL).rstrip("/")
        return f"{base}/{self.bucket}/{name}"

    def upload(self, name: str, stream: BinaryIO, content_type: Optional[str] = None) -> str:
        extra_args = {"ContentType": content_type} if content_type else None
        # upload_fileobj only returns once the object (or every multipart part
        # plus the completion call) has been accepted.
        future = self._uploads.submit(
            self._client.upload_fileobj, stream, self.bucket, name, ExtraArgs=extra_args
        )
        try:
            future.result(timeout=self.timeout)
        except FutureTimeout as exc:
            # A late write leaves an unreferenced blob for the orphan sweep.
            future.cancel()
            raise BlobWriteError(
                f"Upload error, {name} not accepted within {self.timeout}s"
            ) from exc
        except (BotoCoreError, ClientError, OSError) as exc:
            raise BlobWriteError(f"Upload error, {exc}") from exc
        return self.address_for(name)

    def list_blobs(self) -> List[BlobInfo]:
        paginator = self._client.get_paginator("list_objects_v2")
        blobs = []
        for page in paginator.paginate(Bucket=self.bucket):
            for item in page.get("Contents", []):
                blobs.append(BlobInfo(item["Key"], item["LastModified"]))
        return blobs

    def delete(self, name: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=name)

    def close(self) -> None:
        self._uploads.shutdown(wait=False)
        self._client.close()
