"""Error taxonomy shared by capture, verification and upload code."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureReason(str, Enum):
    UNSUPPORTED = "unsupported"
    PERMISSION_DENIED = "permission_denied"
    DEVICE_UNAVAILABLE = "device_unavailable"
    CAPTURE_FAILED = "capture_failed"
    PROFILE_NOT_FOUND = "profile_not_found"
    PROFILE_UNAVAILABLE = "profile_unavailable"
    INVALID_REQUEST = "invalid_request"
    COMMIT_FAILED = "commit_failed"
    UPLOAD_FAILED = "upload_failed"
    CANCELLED = "cancelled"


class VerificationError(RuntimeError):
    """Base class for every failure raised by the verification core."""

    reason: FailureReason = FailureReason.CAPTURE_FAILED

    def __init__(self, message: str = "", *, reason: Optional[FailureReason] = None) -> None:
        super().__init__(message or self.__class__.__name__)
        if reason is not None:
            self.reason = reason


class CameraError(VerificationError):
    """Raised when camera operations fail."""


class UnsupportedError(CameraError):
    reason = FailureReason.UNSUPPORTED


class PermissionDeniedError(CameraError):
    reason = FailureReason.PERMISSION_DENIED


class DeviceUnavailableError(CameraError):
    reason = FailureReason.DEVICE_UNAVAILABLE


class CaptureFailedError(CameraError):
    reason = FailureReason.CAPTURE_FAILED


class CaptureStateError(CameraError):
    """Operation requested from a session state that does not allow it."""

    reason = FailureReason.CAPTURE_FAILED


class ProfileNotFoundError(VerificationError):
    reason = FailureReason.PROFILE_NOT_FOUND


class ProfileUnavailableError(VerificationError):
    """The profile store failed or returned an unreadable reference image."""

    reason = FailureReason.PROFILE_UNAVAILABLE


class InvalidRequestError(VerificationError):
    reason = FailureReason.INVALID_REQUEST


class AttendanceCommitError(VerificationError):
    reason = FailureReason.COMMIT_FAILED


class UploadFailedError(VerificationError):
    reason = FailureReason.UPLOAD_FAILED


class VerificationCancelled(VerificationError):
    reason = FailureReason.CANCELLED


class ImageDecodeError(ValueError):
    """Raised when bytes cannot be decoded into an image."""


__all__ = [
    "FailureReason",
    "VerificationError",
    "CameraError",
    "UnsupportedError",
    "PermissionDeniedError",
    "DeviceUnavailableError",
    "CaptureFailedError",
    "CaptureStateError",
    "ProfileNotFoundError",
    "ProfileUnavailableError",
    "InvalidRequestError",
    "AttendanceCommitError",
    "UploadFailedError",
    "VerificationCancelled",
    "ImageDecodeError",
]
