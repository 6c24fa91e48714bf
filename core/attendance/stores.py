"""Boundary contracts for profile and attendance storage, plus simple adapters."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Protocol, Tuple

from core.errors import AttendanceCommitError, ImageDecodeError, ProfileUnavailableError
from core.storage.blob_store import BlobReference, BlobStore
from core.vision.image import Image

logger = logging.getLogger(__name__)


class ProfileStore(Protocol):
    def get_reference_image(self, subject_id: str) -> Optional[Image]:
        """Return the subject's reference image, or None when not registered."""
        ...


class ReferenceWriter(Protocol):
    def save_reference(self, subject_id: str, reference: BlobReference) -> None:
        ...


class ReferenceIndex(Protocol):
    """Maps subject ids to blob keys (implemented by the SQLite database)."""

    def get_reference_key(self, subject_id: str) -> Optional[str]:
        ...

    def set_reference_key(self, subject_id: str, reference: BlobReference) -> None:
        ...


class AttendanceStore(Protocol):
    def commit(self, subject_id: str, class_id: str, timestamp: datetime) -> None:
        """Persist one attendance record; raise AttendanceCommitError on failure."""
        ...


@dataclass(frozen=True)
class AttendanceRecord:
    subject_id: str
    class_id: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "class_id": self.class_id,
            "timestamp": self.timestamp.isoformat(),
        }


class BlobProfileStore:
    """Resolves reference images through an index and a blob store."""

    def __init__(self, index: ReferenceIndex, blob_store: BlobStore) -> None:
        self.index = index
        self.blob_store = blob_store

    def get_reference_image(self, subject_id: str) -> Optional[Image]:
        key = self.index.get_reference_key(subject_id)
        if not key:
            return None
        try:
            data = self.blob_store.load(key)
        except FileNotFoundError:
            logger.warning("Reference blob %s for %s is missing", key, subject_id)
            return None
        except Exception as exc:
            raise ProfileUnavailableError(f"Could not load reference for {subject_id}: {exc}") from exc
        try:
            return Image.decode(data)
        except ImageDecodeError as exc:
            raise ProfileUnavailableError(f"Reference for {subject_id} is not a valid image") from exc

    def save_reference(self, subject_id: str, reference: BlobReference) -> None:
        self.index.set_reference_key(subject_id, reference)


class InMemoryProfileStore:
    """Dictionary-backed profile store; handy for demos and tests."""

    def __init__(self, blob_store: Optional[BlobStore] = None) -> None:
        self._images: Dict[str, Image] = {}
        self._references: Dict[str, BlobReference] = {}
        self._blob_store = blob_store
        self._lock = threading.Lock()

    def put(self, subject_id: str, image: Image) -> None:
        with self._lock:
            self._images[subject_id] = image

    def save_reference(self, subject_id: str, reference: BlobReference) -> None:
        with self._lock:
            self._references[subject_id] = reference
            self._images.pop(subject_id, None)

    def reference_for(self, subject_id: str) -> Optional[BlobReference]:
        with self._lock:
            return self._references.get(subject_id)

    def get_reference_image(self, subject_id: str) -> Optional[Image]:
        with self._lock:
            image = self._images.get(subject_id)
            reference = self._references.get(subject_id)
        if image is not None:
            return image
        if reference is None or self._blob_store is None:
            return None
        return Image.decode(self._blob_store.load(reference.key))


class InMemoryAttendanceStore:
    """Keeps records in a list; an identical (subject, class, timestamp) is stored once."""

    def __init__(self) -> None:
        self._records: List[AttendanceRecord] = []
        self._keys: set[Tuple[str, str, datetime]] = set()
        self._lock = threading.Lock()

    def commit(self, subject_id: str, class_id: str, timestamp: datetime) -> None:
        if not subject_id or not class_id:
            raise AttendanceCommitError("subject_id and class_id are required")
        key = (subject_id, class_id, timestamp)
        with self._lock:
            if key in self._keys:
                return
            self._keys.add(key)
            self._records.append(AttendanceRecord(subject_id, class_id, timestamp))

    def records(
        self,
        *,
        subject_id: Optional[str] = None,
        class_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[AttendanceRecord]:
        with self._lock:
            rows = list(self._records)
        result = [
            r for r in rows
            if (subject_id is None or r.subject_id == subject_id)
            and (class_id is None or r.class_id == class_id)
            and (start is None or r.timestamp.date() >= start)
            and (end is None or r.timestamp.date() <= end)
        ]
        return sorted(result, key=lambda r: r.timestamp, reverse=True)
