"""Reference image registration: upload first, then record the blob reference."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from core.attendance.stores import ReferenceWriter
from core.errors import InvalidRequestError
from core.storage.blob_store import BlobReference
from core.storage.progress import ProgressCallback
from core.storage.uploader import ReferenceUploader
from core.vision.image import Image


class ReferenceRegistrar:
    def __init__(
        self,
        uploader: ReferenceUploader,
        profile_writer: ReferenceWriter,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.uploader = uploader
        self.profile_writer = profile_writer
        self._logger = logger or logging.getLogger(__name__)

    def register_reference(
        self,
        subject_id: str,
        image: Image,
        on_progress: Optional[ProgressCallback] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> BlobReference:
        """Upload ``image`` and make it the subject's reference.

        If the profile write fails the uploaded blob is removed again so no
        orphaned reference stays behind.
        """
        subject = (subject_id or "").strip()
        if not subject:
            raise InvalidRequestError("subject_id must not be empty")

        reference = self.uploader.upload(image, on_progress, cancel_event=cancel_event)
        try:
            self.profile_writer.save_reference(subject, reference)
        except Exception:
            self._logger.error("[Register] Could not save reference for %s, discarding %s", subject, reference.key)
            self.uploader.discard(reference)
            raise
        self._logger.info("[Register] %s now uses reference %s", subject, reference.key)
        return reference
