"""
Binary asset storage: S3-compatible buckets (MinIO / AWS S3), a local uploads
directory, and an in-memory double for tests.

Every object is addressed by a StorageKey whose path is
``<purpose>/<owner_id>/<name>``. Remote backends hand out presigned GET URLs
whose lifetime depends on the purpose; the local backend returns a path served
by the API's static mount.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol
from urllib.parse import unquote, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings

logger = logging.getLogger(__name__)


class StoragePurpose(str, Enum):
    avatars = "avatars"
    attachments = "attachments"
    backups = "backups"
    exports = "exports"


URL_EXPIRY: Dict[StoragePurpose, timedelta] = {
    StoragePurpose.avatars: timedelta(days=365),
    StoragePurpose.attachments: timedelta(days=365),
    StoragePurpose.backups: timedelta(days=30),
    StoragePurpose.exports: timedelta(hours=1),
}

LOCAL_URL_PREFIX = "/api/uploads"


class StorageError(Exception):
    """Raised by a backend when the underlying store rejects an operation."""


@dataclass(frozen=True)
class StorageKey:
    purpose: StoragePurpose
    owner_id: int
    name: str

    @property
    def path(self) -> str:
        return f"{self.purpose.value}/{self.owner_id}/{self.name}"

    @property
    def expires_in(self) -> int:
        return int(URL_EXPIRY[self.purpose].total_seconds())

    @classmethod
    def from_path(cls, path: str) -> Optional["StorageKey"]:
        segments = [unquote(s) for s in path.split("/") if s]
        purposes = {p.value for p in StoragePurpose}
        for i, segment in enumerate(segments):
            if segment not in purposes or i + 2 >= len(segments):
                continue
            owner = segments[i + 1]
            if not owner.isdigit():
                continue
            return cls(StoragePurpose(segment), int(owner), "/".join(segments[i + 2:]))
        return None

    @classmethod
    def from_url(cls, url: str) -> Optional["StorageKey"]:
        """Recover the key from a URL issued by any backend.

        Looks for the first ``<purpose>/<numeric owner>/...`` run in the URL
        path, so bucket names, host styles and the local /api/uploads prefix
        do not matter. Returns None when no such run exists.
        """
        if not url:
            return None
        return cls.from_path(urlparse(url).path)


DeleteFailureHook = Callable[[StorageKey, Exception], None]


class BlobStorage(Protocol):
    """Operations the services need from binary storage."""

    is_remote: bool

    def store(self, key: StorageKey, data: bytes, content_type: Optional[str] = None) -> str:
        ...

    def delete(self, key: StorageKey) -> None:
        ...

    def discard(self, key: StorageKey) -> bool:
        ...

    def base_directory_for(self, purpose: StoragePurpose) -> str:
        ...

    def add_delete_failure_hook(self, hook: DeleteFailureHook) -> None:
        ...


class _BestEffortDeleteMixin:
    """Shared best-effort delete: log, notify hooks, never raise."""

    _delete_failure_hooks: List[DeleteFailureHook]

    def add_delete_failure_hook(self, hook: DeleteFailureHook) -> None:
        self._delete_failure_hooks.append(hook)

    def discard(self, key: StorageKey) -> bool:
        try:
            self.delete(key)
        except Exception as exc:  # storage and metadata may now diverge
            logger.warning("Failed to delete stored object %s: %s", key.path, exc)
            for hook in self._delete_failure_hooks:
                hook(key, exc)
            return False
        return True


@dataclass
class InMemoryBlobStorage(_BestEffortDeleteMixin):
    """Test double; behaves like a remote backend unless is_remote=False."""

    base_url: str = "https://storage.example.test/uploads"
    is_remote: bool = True
    fail_deletes: bool = False
    objects: Dict[str, bytes] = field(default_factory=dict)
    content_types: Dict[str, Optional[str]] = field(default_factory=dict)
    _delete_failure_hooks: List[DeleteFailureHook] = field(default_factory=list)

    def store(self, key: StorageKey, data: bytes, content_type: Optional[str] = None) -> str:
        self.objects[key.path] = bytes(data)
        self.content_types[key.path] = content_type
        if not self.is_remote:
            return f"{LOCAL_URL_PREFIX}/{key.path}"
        return f"{self.base_url}/{key.path}?expires={key.expires_in}"

    def delete(self, key: StorageKey) -> None:
        if self.fail_deletes:
            raise StorageError(f"delete rejected for {key.path}")
        self.objects.pop(key.path, None)

    def base_directory_for(self, purpose: StoragePurpose) -> str:
        return purpose.value


class LocalBlobStorage(_BestEffortDeleteMixin):
    """Writes objects beneath an uploads directory served at /api/uploads."""

    is_remote = False

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._delete_failure_hooks = []

    def base_directory_for(self, purpose: StoragePurpose) -> str:
        directory = self.root / purpose.value
        directory.mkdir(parents=True, exist_ok=True)
        return str(directory)

    def _file_for(self, key: StorageKey) -> Path:
        target = (Path(self.base_directory_for(key.purpose)) / str(key.owner_id) / key.name).resolve()
        if self.root.resolve() not in target.parents:
            raise StorageError(f"key escapes uploads directory: {key.path}")
        return target

    def store(self, key: StorageKey, data: bytes, content_type: Optional[str] = None) -> str:
        target = self._file_for(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return f"{LOCAL_URL_PREFIX}/{key.path}"

    def delete(self, key: StorageKey) -> None:
        self._file_for(key).unlink(missing_ok=True)


class S3BlobStorage(_BestEffortDeleteMixin):
    """S3-compatible bucket storage (MinIO, AWS S3) returning presigned URLs."""

    is_remote = True

    def __init__(
        self,
        bucket: str,
        endpoint: Optional[str] = None,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        max_presign_seconds: int = 7 * 24 * 60 * 60,
    ):
        self.bucket = bucket
        self.max_presign_seconds = max_presign_seconds
        self._delete_failure_hooks = []
        self._bucket_ready = False
        # Without explicit keys boto3 falls back to the ambient credential chain
        # (instance profile / workload identity).
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        try:
            self._client.head_bucket(Bucket=self.bucket)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") not in ("404", "NoSuchBucket", "NotFound"):
                raise StorageError(str(exc)) from exc
            logger.info("Creating storage bucket %s", self.bucket)
            self._client.create_bucket(Bucket=self.bucket)
        self._bucket_ready = True

    def base_directory_for(self, purpose: StoragePurpose) -> str:
        return purpose.value

    def store(self, key: StorageKey, data: bytes, content_type: Optional[str] = None) -> str:
        try:
            self._ensure_bucket()
            extra = {"ContentType": content_type} if content_type else {}
            self._client.put_object(Bucket=self.bucket, Key=key.path, Body=data, **extra)
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key.path},
                ExpiresIn=min(key.expires_in, self.max_presign_seconds),
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(str(exc)) from exc

    def delete(self, key: StorageKey) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key.path)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(str(exc)) from exc


def build_storage(settings: Settings) -> BlobStorage:
    """Pick the storage backend for this process from settings."""
    if settings.USE_IN_MEMORY_STORAGE:
        logger.info("Using in-memory blob storage")
        return InMemoryBlobStorage()

    has_keys = bool(settings.MINIO_ACCESS_KEY and settings.MINIO_SECRET_KEY)
    if settings.MINIO_BUCKET and (settings.is_production or has_keys):
        logger.info("Using S3 blob storage, bucket=%s", settings.MINIO_BUCKET)
        return S3BlobStorage(
            bucket=settings.MINIO_BUCKET,
            endpoint=settings.MINIO_ENDPOINT,
            region=settings.MINIO_REGION,
            access_key_id=settings.MINIO_ACCESS_KEY if has_keys else None,
            secret_access_key=settings.MINIO_SECRET_KEY if has_keys else None,
            max_presign_seconds=settings.MINIO_MAX_PRESIGN_SECONDS,
        )

    logger.info("Using local blob storage at %s", settings.UPLOADS_DIR)
    return LocalBlobStorage(settings.UPLOADS_DIR)
