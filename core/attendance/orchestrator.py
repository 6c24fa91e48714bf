"""End-to-end verification attempt: capture, reference lookup, scoring, commit.

Every device error, missing profile or cancellation is folded into a single
:data:`Outcome`; the capture session is closed before ``verify`` returns no
matter which stage stopped the attempt. Nothing is retried automatically.
"""
from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import CancelledError, Future, TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from core.attendance.outcome import (
    Accepted,
    AttendanceClaim,
    CommitFailed,
    Failed,
    Outcome,
    Rejected,
)
from core.attendance.stores import AttendanceStore, ProfileStore
from core.errors import (
    InvalidRequestError,
    ProfileNotFoundError,
    ProfileUnavailableError,
    VerificationCancelled,
    VerificationError,
)
from core.vision.camera_manager import CaptureConfig
from core.vision.controller import CaptureController
from core.vision.image import Image
from core.vision.similarity import DEFAULT_GRID_SIZE, DEFAULT_THRESHOLD, MatchResult, SimilarityScorer


class VerificationStage(str, Enum):
    READY = "ready"
    ACQUIRING_DEVICE = "acquiring_device"
    AWAITING_CAPTURE = "awaiting_capture"
    FETCHING_REFERENCE = "fetching_reference"
    SCORING = "scoring"
    DECIDING = "deciding"
    COMMITTING = "committing"
    REJECTED = "rejected"
    DONE = "done"
    FAILED = "failed"


StageListener = Callable[[int, VerificationStage], None]

CANCEL_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class VerificationPolicy:
    threshold: float = DEFAULT_THRESHOLD
    grid_size: int = DEFAULT_GRID_SIZE
    scoring_timeout: Optional[float] = 10.0


class VerificationOrchestrator:
    """Runs one verification transaction per ``verify`` call."""

    def __init__(
        self,
        controller: CaptureController,
        profile_store: ProfileStore,
        attendance_store: AttendanceStore,
        scorer: Optional[SimilarityScorer] = None,
        *,
        policy: Optional[VerificationPolicy] = None,
        default_capture: Optional[CaptureConfig] = None,
        on_stage: Optional[StageListener] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if scorer is None:
            policy = policy or VerificationPolicy()
            scorer = SimilarityScorer(policy.grid_size, policy.threshold)
        elif policy is None:
            policy = VerificationPolicy(threshold=scorer.threshold, grid_size=scorer.grid_size)
        elif (policy.threshold, policy.grid_size) != (scorer.threshold, scorer.grid_size):
            raise ValueError(
                f"Scorer (threshold={scorer.threshold}, grid={scorer.grid_size}) does not match "
                f"policy (threshold={policy.threshold}, grid={policy.grid_size})"
            )
        self.policy = policy
        self.controller = controller
        self.profile_store = profile_store
        self.attendance_store = attendance_store
        self.scorer = scorer
        self.default_capture = default_capture or CaptureConfig()
        self._on_stage = on_stage
        self._logger = logger or logging.getLogger(__name__)
        self._attempts = itertools.count(1)

    # ------------------------------------------------------------------
    # Stage helpers
    def _enter(self, attempt: int, stage: VerificationStage) -> None:
        self._logger.debug("[Verify] attempt %s -> %s", attempt, stage.value)
        if self._on_stage is not None:
            self._on_stage(attempt, stage)

    @staticmethod
    def _check_cancel(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise VerificationCancelled("Verification cancelled by caller")

    def _capture_frame(
        self,
        attempt: int,
        config: CaptureConfig,
        cancel_event: Optional[threading.Event],
    ) -> Image:
        self._enter(attempt, VerificationStage.ACQUIRING_DEVICE)
        with self.controller.session(config) as session:
            self._check_cancel(cancel_event)
            self._enter(attempt, VerificationStage.AWAITING_CAPTURE)
            return self.controller.capture(session)

    def _fetch_reference(self, subject_id: str) -> Image:
        try:
            reference = self.profile_store.get_reference_image(subject_id)
        except VerificationError:
            raise
        except Exception as exc:
            raise ProfileUnavailableError(f"Profile store error for {subject_id}: {exc}") from exc
        if reference is None:
            raise ProfileNotFoundError(f"No reference image registered for {subject_id}")
        return reference

    def _await_score(self, future: "Future[MatchResult]", cancel_event: Optional[threading.Event]) -> MatchResult:
        timeout = self.policy.scoring_timeout
        waited = 0.0
        while True:
            try:
                return future.result(timeout=CANCEL_POLL_SECONDS)
            except FutureTimeout:
                waited += CANCEL_POLL_SECONDS
            except CancelledError as exc:
                raise VerificationCancelled("Scoring was cancelled") from exc
            if cancel_event is not None and cancel_event.is_set():
                future.cancel()
                raise VerificationCancelled("Verification cancelled during scoring")
            if timeout is not None and waited >= timeout:
                future.cancel()
                raise VerificationCancelled(f"Scoring did not finish within {timeout:.1f}s")

    # ------------------------------------------------------------------
    # Public API
    def verify(
        self,
        subject_id: str,
        class_id: str,
        capture_config: Optional[CaptureConfig] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> Outcome:
        attempt = next(self._attempts)
        subject = (subject_id or "").strip()
        klass = (class_id or "").strip()
        self._enter(attempt, VerificationStage.READY)

        try:
            if not subject:
                raise InvalidRequestError("subject_id must not be empty")
            if not klass:
                raise InvalidRequestError("class_id must not be empty")

            self._check_cancel(cancel_event)
            captured = self._capture_frame(attempt, capture_config or self.default_capture, cancel_event)

            self._check_cancel(cancel_event)
            self._enter(attempt, VerificationStage.FETCHING_REFERENCE)
            reference = self._fetch_reference(subject)

            self._check_cancel(cancel_event)
            self._enter(attempt, VerificationStage.SCORING)
            match = self._await_score(self.scorer.submit(captured, reference), cancel_event)

            self._enter(attempt, VerificationStage.DECIDING)
            self._check_cancel(cancel_event)
        except VerificationError as exc:
            self._enter(attempt, VerificationStage.FAILED)
            self._logger.warning("[Verify] %s/%s failed (%s): %s", subject, klass, exc.reason.value, exc)
            return Failed(reason=exc.reason, message=str(exc))

        if not match.accepted:
            self._enter(attempt, VerificationStage.REJECTED)
            self._enter(attempt, VerificationStage.DONE)
            self._logger.info("[Verify] %s/%s rejected, score %.4f", subject, klass, match.score)
            return Rejected(score=match.score)

        self._enter(attempt, VerificationStage.COMMITTING)
        claim = AttendanceClaim(subject, klass, captured.captured_at or datetime.now())
        try:
            self.attendance_store.commit(claim.subject_id, claim.class_id, claim.captured_at)
        except Exception as exc:
            self._enter(attempt, VerificationStage.FAILED)
            self._logger.error("[Verify] commit for %s/%s failed: %s", subject, klass, exc)
            return CommitFailed(reason=str(exc) or exc.__class__.__name__, score=match.score)

        self._enter(attempt, VerificationStage.DONE)
        self._logger.info("[Verify] %s/%s accepted, score %.4f", subject, klass, match.score)
        return Accepted(score=match.score, recorded_at=claim.captured_at)
