"""
Blob storage backends for reference images.
Local filesystem and MinIO (S3-compatible) implementations.
"""
from __future__ import annotations

import io
import logging
import os
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from minio import Minio
from minio.error import S3Error

from core.errors import FailureReason, UploadFailedError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
CONTENT_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}

PercentCallback = Callable[[float], None]


@dataclass(frozen=True)
class BlobReference:
    key: str
    size: int
    content_type: str = "image/jpeg"
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "size": self.size,
            "content_type": self.content_type,
            "url": self.url,
        }


class BlobStore(Protocol):
    def store(
        self,
        data: bytes,
        on_progress: Optional[PercentCallback] = None,
        *,
        content_type: str = "image/jpeg",
        cancel_event: Optional[threading.Event] = None,
    ) -> BlobReference:
        ...

    def load(self, key: str) -> bytes:
        ...

    def delete(self, key: str) -> bool:
        ...


def generate_blob_key(content_type: str) -> str:
    ext = CONTENT_EXTENSIONS.get(content_type, ".bin")
    return f"{uuid.uuid4().hex}{ext}"


def _check_cancel(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise UploadFailedError("Upload cancelled", reason=FailureReason.CANCELLED)


class LocalBlobStore:
    """Filesystem storage; blobs become visible only after a complete write."""

    def __init__(self, root: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.root = Path(root)
        self.chunk_size = max(1, int(chunk_size))
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Invalid blob key: {key}")
        return path

    def store(
        self,
        data: bytes,
        on_progress: Optional[PercentCallback] = None,
        *,
        content_type: str = "image/jpeg",
        cancel_event: Optional[threading.Event] = None,
    ) -> BlobReference:
        key = generate_blob_key(content_type)
        final_path = self._path_for(key)
        temp_path = final_path.with_name(final_path.name + ".part")
        total = len(data)
        try:
            with temp_path.open("wb") as handle:
                written = 0
                for offset in range(0, total, self.chunk_size):
                    _check_cancel(cancel_event)
                    chunk = data[offset:offset + self.chunk_size]
                    handle.write(chunk)
                    written += len(chunk)
                    if on_progress is not None:
                        on_progress(written * 100.0 / total)
                handle.flush()
                os.fsync(handle.fileno())
            _check_cancel(cancel_event)
            temp_path.replace(final_path)
        except OSError as exc:
            self._discard(temp_path)
            logger.error("Local blob write failed for %s: %s", key, exc)
            raise UploadFailedError(f"Local blob write failed: {exc}") from exc
        except BaseException:
            self._discard(temp_path)
            raise

        logger.info("Stored blob %s (%s bytes)", key, total)
        return BlobReference(key=key, size=total, content_type=content_type)

    def load(self, key: str) -> bytes:
        return self._path_for(key).read_bytes()

    def delete(self, key: str) -> bool:
        try:
            self._path_for(key).unlink()
            return True
        except FileNotFoundError:
            return False

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.debug("Could not remove partial blob %s: %s", path, exc)


class _ProgressReader(io.RawIOBase):
    """File-like view over bytes that reports how much the client consumed."""

    def __init__(
        self,
        data: bytes,
        on_progress: Optional[PercentCallback],
        cancel_event: Optional[threading.Event],
    ) -> None:
        super().__init__()
        self._buffer = io.BytesIO(data)
        self._total = len(data)
        self._on_progress = on_progress
        self._cancel_event = cancel_event

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        _check_cancel(self._cancel_event)
        chunk = self._buffer.read(size)
        if chunk and self._on_progress is not None and self._total:
            self._on_progress(self._buffer.tell() * 100.0 / self._total)
        return chunk


class MinioBlobStore:
    """MinIO storage service for reference images."""

    def __init__(
        self,
        client: Minio,
        bucket: str,
        *,
        public_url: Optional[str] = None,
        create_bucket: bool = True,
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.public_url = public_url.rstrip("/") if public_url else None
        if create_bucket:
            self._ensure_bucket()

    @classmethod
    def from_settings(
        cls,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        *,
        secure: bool = False,
        public_url: Optional[str] = None,
    ) -> "MinioBlobStore":
        client = Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
        )
        logger.info(f"MinIO storage initialized: {endpoint}")
        return cls(client, bucket, public_url=public_url)

    def _ensure_bucket(self) -> None:
        try:
            if not self.client.bucket_exists(bucket_name=self.bucket):
                self.client.make_bucket(bucket_name=self.bucket)
                logger.info(f"Created MinIO bucket {self.bucket}")
        except S3Error as e:
            logger.error(f"MinIO bucket check failed: {e}")
            raise

    def store(
        self,
        data: bytes,
        on_progress: Optional[PercentCallback] = None,
        *,
        content_type: str = "image/jpeg",
        cancel_event: Optional[threading.Event] = None,
    ) -> BlobReference:
        object_name = generate_blob_key(content_type)
        reader = _ProgressReader(data, on_progress, cancel_event)
        try:
            self.client.put_object(
                bucket_name=self.bucket,
                object_name=object_name,
                data=reader,
                length=len(data),
                content_type=content_type,
            )
        except UploadFailedError:
            self._discard(object_name)
            raise
        except Exception as e:
            logger.error(f"MinIO upload error: {e}")
            self._discard(object_name)
            raise UploadFailedError(f"MinIO upload failed: {e}") from e

        url = f"{self.public_url}/{self.bucket}/{object_name}" if self.public_url else None
        logger.info(f"Uploaded to {self.bucket}: {object_name} ({len(data)} bytes)")
        return BlobReference(key=object_name, size=len(data), content_type=content_type, url=url)

    def load(self, key: str) -> bytes:
        try:
            response = self.client.get_object(bucket_name=self.bucket, object_name=key)
        except S3Error as e:
            if e.code == "NoSuchKey":
                raise FileNotFoundError(key) from e
            raise
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def delete(self, key: str) -> bool:
        try:
            self.client.remove_object(bucket_name=self.bucket, object_name=key)
            logger.info(f"Deleted from {self.bucket}: {key}")
            return True
        except S3Error as e:
            logger.error(f"MinIO delete error: {e}")
            return False

    def _discard(self, object_name: str) -> None:
        try:
            self.client.remove_object(bucket_name=self.bucket, object_name=object_name)
        except Exception as e:  # pragma: no cover - network dependent
            logger.debug(f"MinIO cleanup of {object_name} skipped: {e}")
