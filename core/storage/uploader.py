"""Streams registration images to blob storage with progress reporting."""
from __future__ import annotations

import logging
import threading
import uuid
from typing import Optional

from core.errors import UploadFailedError
from core.storage.blob_store import BlobReference, BlobStore
from core.storage.progress import ProgressCallback, ProgressStream, ProgressTracker
from core.vision.image import Image


class ReferenceUploader:
    """Uploads an image as one all-or-nothing blob."""

    def __init__(
        self,
        blob_store: BlobStore,
        *,
        stream: Optional[ProgressStream] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.blob_store = blob_store
        self.stream = stream or ProgressStream()
        self._logger = logger or logging.getLogger(__name__)

    def upload(
        self,
        image: Image,
        on_progress: Optional[ProgressCallback] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> BlobReference:
        """Store ``image`` and return its reference.

        ``on_progress`` receives non-decreasing percentages ending with 100 on
        success. Any transport failure raises UploadFailedError and no
        reference is returned.
        """
        upload_id = uuid.uuid4().hex[:12]
        tracker = ProgressTracker(upload_id, self.stream, on_progress)
        data = image.to_bytes()
        if not data:
            tracker.fail("Empty image payload")
            raise UploadFailedError("Empty image payload")

        tracker.report(0.0)
        try:
            reference = self.blob_store.store(
                data,
                tracker.report,
                content_type=image.content_type,
                cancel_event=cancel_event,
            )
        except UploadFailedError as exc:
            tracker.fail(str(exc))
            self._logger.error("[Upload] %s failed: %s", upload_id, exc)
            raise
        except Exception as exc:
            tracker.fail(str(exc))
            self._logger.error("[Upload] %s failed: %s", upload_id, exc)
            raise UploadFailedError(f"Upload failed: {exc}") from exc

        tracker.complete()
        self._logger.info("[Upload] %s stored as %s (%s bytes)", upload_id, reference.key, reference.size)
        return reference

    def discard(self, reference: BlobReference) -> None:
        """Remove a blob whose registration could not be completed."""
        if not self.blob_store.delete(reference.key):
            self._logger.warning("[Upload] Could not discard blob %s", reference.key)
