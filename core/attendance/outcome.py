"""Result types of a verification attempt."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Union

from core.errors import FailureReason


class OutcomeStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"
    COMMIT_FAILED = "commit_failed"


@dataclass(frozen=True)
class AttendanceClaim:
    """Submitted to the attendance store only after an accepted match."""

    subject_id: str
    class_id: str
    captured_at: datetime


@dataclass(frozen=True)
class Accepted:
    score: float
    recorded_at: datetime
    status: ClassVar[OutcomeStatus] = OutcomeStatus.ACCEPTED

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "score": self.score, "recorded_at": self.recorded_at.isoformat()}


@dataclass(frozen=True)
class Rejected:
    score: float
    status: ClassVar[OutcomeStatus] = OutcomeStatus.REJECTED

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "score": self.score}


@dataclass(frozen=True)
class Failed:
    reason: FailureReason
    message: str = ""
    status: ClassVar[OutcomeStatus] = OutcomeStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "reason": self.reason.value, "message": self.message}


@dataclass(frozen=True)
class CommitFailed:
    reason: str
    score: float
    status: ClassVar[OutcomeStatus] = OutcomeStatus.COMMIT_FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "reason": self.reason, "score": self.score}


Outcome = Union[Accepted, Rejected, Failed, CommitFailed]
