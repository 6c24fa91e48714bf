"""
Attendance Service - glue between Flask routes and the core verification flow
Logs outcomes, broadcasts events and keeps profiles consistent with blob storage.
"""
import logging
from typing import Optional

from core.attendance import Accepted, CommitFailed, Failed, ReferenceRegistrar, VerificationOrchestrator
from core.errors import FailureReason, InvalidRequestError
from logging_config import audit_logger, capture_logger, verification_logger

CAMERA_REASONS = frozenset({
    FailureReason.UNSUPPORTED,
    FailureReason.PERMISSION_DENIED,
    FailureReason.DEVICE_UNAVAILABLE,
    FailureReason.CAPTURE_FAILED,
})


class StudentExistsError(ValueError):
    pass


class StudentNotFoundError(LookupError):
    pass


class AttendanceService:
    """Service quản lý verification, đăng ký và truy vấn điểm danh."""

    def __init__(
        self,
        orchestrator: VerificationOrchestrator,
        registrar: ReferenceRegistrar,
        database,
        blob_store,
        broadcaster=None,
        logger: Optional[logging.Logger] = None,
    ):
        self.orchestrator = orchestrator
        self.registrar = registrar
        self.database = database
        self.blob_store = blob_store
        self.broadcaster = broadcaster
        self.logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Verification
    def verify(self, subject_id, class_id, capture_config=None):
        outcome = self.orchestrator.verify(subject_id, class_id, capture_config)
        subject = (subject_id or '').strip()
        klass = (class_id or '').strip()

        verification_logger.log_outcome(subject, klass, outcome)
        if isinstance(outcome, Accepted):
            audit_logger.log_attendance(subject, klass, outcome.recorded_at.isoformat(), outcome.score)
        elif isinstance(outcome, CommitFailed):
            audit_logger.log_commit_failure(subject, klass, outcome.reason)
        elif isinstance(outcome, Failed) and outcome.reason in CAMERA_REASONS:
            capture_logger.log_failure(outcome.reason.value, outcome.message)

        if self.broadcaster is not None:
            self.broadcaster.broadcast_verification_outcome(subject, klass, outcome)
        return outcome

    def camera_status(self):
        return self.orchestrator.controller.status()

    # ------------------------------------------------------------------
    # Profiles
    def register_student(self, subject_id, full_name, image, on_progress=None):
        """Create the profile row, then upload and attach the reference image.

        The row is removed again when the upload or the reference write fails.
        """
        subject = (subject_id or '').strip()
        name = (full_name or '').strip() or subject
        if not subject:
            raise InvalidRequestError("subject_id must not be empty")

        if not self.database.add_student(subject, name):
            raise StudentExistsError(f"Student {subject} already exists")

        try:
            reference = self.registrar.register_reference(subject, image, on_progress)
        except Exception:
            self.database.delete_student(subject)
            raise

        audit_logger.log_registration(subject, reference.key)
        return reference

    def replace_reference(self, subject_id, image, on_progress=None):
        subject = (subject_id or '').strip()
        student = self.database.get_student(subject) if subject else None
        if not student:
            raise StudentNotFoundError(f"Student {subject_id} not found")

        old_key = student.get('reference_key')
        reference = self.registrar.register_reference(subject, image, on_progress)
        if old_key and old_key != reference.key and not self.blob_store.delete(old_key):
            self.logger.warning("[Register] Old reference %s for %s was not removed", old_key, subject)

        audit_logger.log_registration(subject, reference.key, replaced=True)
        return reference

    def update_student(self, subject_id, full_name):
        """Đổi tên hiển thị của sinh viên đã đăng ký."""
        if not self.database.update_student(subject_id, full_name=full_name):
            raise StudentNotFoundError(subject_id)
        self.logger.info("[Register] Updated profile of %s", subject_id)
        return self.get_student(subject_id)

    def get_reference_bytes(self, subject_id):
        """Return (bytes, content_type) of the stored reference, or None."""
        student = self.database.get_student(subject_id)
        if not student or not student.get('reference_key'):
            return None
        try:
            data = self.blob_store.load(student['reference_key'])
        except FileNotFoundError:
            self.logger.warning("[Register] Reference blob for %s is missing", subject_id)
            return None
        return data, student.get('reference_content_type') or 'image/jpeg'

    # ------------------------------------------------------------------
    # Queries
    def list_students(self):
        return [serialize_student(row) for row in self.database.get_all_students()]

    def get_student(self, subject_id):
        return serialize_student(self.database.get_student(subject_id))

    def list_records(self, subject_id=None, class_id=None, start_date=None, end_date=None):
        return self.database.get_attendance_records(
            student_id=subject_id,
            class_id=class_id,
            start_date=start_date,
            end_date=end_date,
        )


def serialize_student(row):
    """Public view of a student row (no storage internals)."""
    if not row:
        return None
    return {
        'subject_id': row['student_id'],
        'full_name': row['full_name'],
        'has_reference': bool(row.get('reference_key')),
        'reference_content_type': row.get('reference_content_type'),
        'reference_size': row.get('reference_size'),
        'reference_url': row.get('reference_url'),
        'created_at': row.get('created_at'),
        'updated_at': row.get('updated_at'),
        'is_active': bool(row.get('is_active')),
    }
