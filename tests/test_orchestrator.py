"""End-to-end verification scenarios against a fake camera and in-memory stores."""

import threading
from concurrent.futures import Future
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from core.attendance import (
    Accepted,
    CommitFailed,
    Failed,
    InMemoryAttendanceStore,
    Rejected,
    VerificationOrchestrator,
    VerificationPolicy,
    VerificationStage,
)
from core.errors import AttendanceCommitError, FailureReason
from core.vision import CaptureController, Image

from conftest import FakeProvider, solid_frame


def test_matching_reference_is_accepted_and_committed(orchestrator, profile_store, attendance_store, red_image) -> None:
    profile_store.put("S1", red_image)

    outcome = orchestrator.verify("S1", "C1")

    assert isinstance(outcome, Accepted)
    assert outcome.score == 1.0
    records = attendance_store.records()
    assert len(records) == 1
    assert records[0].subject_id == "S1"
    assert records[0].class_id == "C1"
    assert records[0].timestamp == outcome.recorded_at
    assert orchestrator.controller.active_sessions() == 0


def test_mismatching_reference_is_rejected_without_commit(orchestrator, profile_store, attendance_store) -> None:
    profile_store.put("S1", Image.from_bgr(solid_frame((255, 255, 0))))

    with patch("core.attendance.orchestrator.AttendanceClaim") as claim:
        outcome = orchestrator.verify("S1", "C1")

    assert isinstance(outcome, Rejected)
    assert outcome.score < 0.7
    claim.assert_not_called()
    assert attendance_store.records() == []


def test_device_in_use_fails_and_holder_survives(orchestrator, profile_store, red_image, capture_config) -> None:
    profile_store.put("S1", red_image)
    holder = orchestrator.controller.acquire(capture_config)

    outcome = orchestrator.verify("S1", "C1")

    assert isinstance(outcome, Failed)
    assert outcome.reason is FailureReason.DEVICE_UNAVAILABLE
    assert holder.is_active
    orchestrator.controller.release(holder)


def test_commit_failure_is_reported_with_score(controller, profile_store, scorer, capture_config, red_image) -> None:
    store = MagicMock()
    store.commit.side_effect = AttendanceCommitError("database is locked")
    profile_store.put("S1", red_image)
    orchestrator = VerificationOrchestrator(controller, profile_store, store, scorer, default_capture=capture_config)

    outcome = orchestrator.verify("S1", "C1")

    assert isinstance(outcome, CommitFailed)
    assert outcome.score == 1.0
    assert "database is locked" in outcome.reason
    store.commit.assert_called_once()
    assert controller.active_sessions() == 0


@pytest.mark.parametrize("subject_id,class_id", [("", "C1"), ("S1", ""), ("   ", "C1")])
def test_invalid_request_never_touches_camera(orchestrator, provider, subject_id, class_id) -> None:
    outcome = orchestrator.verify(subject_id, class_id)

    assert isinstance(outcome, Failed)
    assert outcome.reason is FailureReason.INVALID_REQUEST
    assert provider.captures == []


def test_unknown_profile_fails_and_releases_device(orchestrator, provider) -> None:
    outcome = orchestrator.verify("nobody", "C1")

    assert isinstance(outcome, Failed)
    assert outcome.reason is FailureReason.PROFILE_NOT_FOUND
    assert provider.captures[0].released is True
    assert orchestrator.controller.status()["devices_in_use"] == []


def test_profile_store_errors_become_profile_unavailable(controller, attendance_store, scorer, capture_config) -> None:
    profiles = MagicMock()
    profiles.get_reference_image.side_effect = IOError("disk gone")
    orchestrator = VerificationOrchestrator(controller, profiles, attendance_store, scorer, default_capture=capture_config)

    outcome = orchestrator.verify("S1", "C1")

    assert isinstance(outcome, Failed)
    assert outcome.reason is FailureReason.PROFILE_UNAVAILABLE


def test_permission_denied_is_reported(profile_store, attendance_store, scorer, controller_config, capture_config) -> None:
    controller = CaptureController(FakeProvider(open_error=PermissionError("denied")), config=controller_config)
    orchestrator = VerificationOrchestrator(
        controller, profile_store, attendance_store, scorer, default_capture=capture_config
    )

    outcome = orchestrator.verify("S1", "C1")

    assert isinstance(outcome, Failed)
    assert outcome.reason is FailureReason.PERMISSION_DENIED
    assert controller.status()["devices_in_use"] == []


def test_capture_failure_releases_device(profile_store, attendance_store, scorer, controller_config, capture_config) -> None:
    provider = FakeProvider(fail_reads=True)
    controller = CaptureController(provider, config=controller_config)
    orchestrator = VerificationOrchestrator(
        controller, profile_store, attendance_store, scorer, default_capture=capture_config
    )

    outcome = orchestrator.verify("S1", "C1")

    assert isinstance(outcome, Failed)
    assert outcome.reason is FailureReason.CAPTURE_FAILED
    assert provider.captures[0].released is True


def test_cancelled_before_start(orchestrator, provider) -> None:
    cancel = threading.Event()
    cancel.set()

    outcome = orchestrator.verify("S1", "C1", cancel_event=cancel)

    assert isinstance(outcome, Failed)
    assert outcome.reason is FailureReason.CANCELLED
    assert provider.captures == []


def test_cancel_after_acquire_releases_device(orchestrator, provider, profile_store, red_image) -> None:
    profile_store.put("S1", red_image)
    cancel = threading.Event()
    controller = orchestrator.controller
    real_capture = controller.capture

    def capture_then_cancel(session):
        image = real_capture(session)
        cancel.set()
        return image

    controller.capture = capture_then_cancel

    outcome = orchestrator.verify("S1", "C1", cancel_event=cancel)

    assert isinstance(outcome, Failed)
    assert outcome.reason is FailureReason.CANCELLED
    assert provider.captures[0].released is True
    assert controller.active_sessions() == 0
    assert orchestrator.attendance_store.records() == []


def test_scoring_timeout_fails_as_cancelled(controller, profile_store, attendance_store, capture_config, red_image) -> None:
    profile_store.put("S1", red_image)
    pending = Future()
    scorer = MagicMock(threshold=0.7, grid_size=100)
    scorer.submit.return_value = pending
    orchestrator = VerificationOrchestrator(
        controller,
        profile_store,
        attendance_store,
        scorer,
        policy=VerificationPolicy(scoring_timeout=0.1),
        default_capture=capture_config,
    )

    outcome = orchestrator.verify("S1", "C1")

    assert isinstance(outcome, Failed)
    assert outcome.reason is FailureReason.CANCELLED
    assert pending.cancelled()
    assert attendance_store.records() == []
    assert controller.active_sessions() == 0


def test_policy_must_agree_with_scorer(controller, profile_store, attendance_store, scorer) -> None:
    with pytest.raises(ValueError):
        VerificationOrchestrator(
            controller, profile_store, attendance_store, scorer, policy=VerificationPolicy(threshold=0.9)
        )


def test_policy_defaults_to_scorer_settings(controller, profile_store, attendance_store) -> None:
    from core.vision import SimilarityScorer

    orchestrator = VerificationOrchestrator(
        controller, profile_store, attendance_store, SimilarityScorer(grid_size=20, threshold=0.85)
    )

    assert orchestrator.policy.threshold == 0.85
    assert orchestrator.policy.grid_size == 20


def test_threshold_comes_from_scorer(controller, profile_store, attendance_store, capture_config) -> None:
    from core.vision import SimilarityScorer

    profile_store.put("S1", Image.from_bgr(solid_frame((0, 0, 200))))
    strict = SimilarityScorer(threshold=0.99)
    lenient = SimilarityScorer(threshold=0.9)
    try:
        strict_outcome = VerificationOrchestrator(
            controller, profile_store, attendance_store, strict, default_capture=capture_config
        ).verify("S1", "C1")
        lenient_outcome = VerificationOrchestrator(
            controller, profile_store, attendance_store, lenient, default_capture=capture_config
        ).verify("S1", "C1")
    finally:
        strict.shutdown()
        lenient.shutdown()

    # 55 / (3 * 255) lost on one channel
    assert isinstance(strict_outcome, Rejected)
    assert isinstance(lenient_outcome, Accepted)


def test_stage_listener_sees_full_accept_path(controller, profile_store, attendance_store, scorer, capture_config, red_image) -> None:
    stages = []
    profile_store.put("S1", red_image)
    orchestrator = VerificationOrchestrator(
        controller,
        profile_store,
        attendance_store,
        scorer,
        policy=VerificationPolicy(),
        default_capture=capture_config,
        on_stage=lambda attempt, stage: stages.append(stage),
    )

    orchestrator.verify("S1", "C1")

    assert stages == [
        VerificationStage.READY,
        VerificationStage.ACQUIRING_DEVICE,
        VerificationStage.AWAITING_CAPTURE,
        VerificationStage.FETCHING_REFERENCE,
        VerificationStage.SCORING,
        VerificationStage.DECIDING,
        VerificationStage.COMMITTING,
        VerificationStage.DONE,
    ]


def test_duplicate_claim_is_stored_once() -> None:
    store = InMemoryAttendanceStore()
    stamp = datetime(2024, 5, 1, 9, 30)

    store.commit("S1", "C1", stamp)
    store.commit("S1", "C1", stamp)
    store.commit("S1", "C2", stamp)

    assert len(store.records()) == 2
    assert [r.class_id for r in store.records(subject_id="S1", class_id="C2")] == ["C2"]


def test_opposite_images_are_rejected_with_zero_score(profile_store, attendance_store, scorer, controller_config, capture_config) -> None:
    controller = CaptureController(FakeProvider(solid_frame((0, 0, 0))), config=controller_config)
    profile_store.put("S1", Image.from_bgr(solid_frame((255, 255, 255))))
    orchestrator = VerificationOrchestrator(
        controller, profile_store, attendance_store, scorer, default_capture=capture_config
    )

    outcome = orchestrator.verify("S1", "C1")

    assert isinstance(outcome, Rejected)
    assert outcome.score == 0.0
    assert attendance_store.records() == []


def test_unregistered_subject_leaves_no_active_session(orchestrator, profile_store, red_image) -> None:
    profile_store.put("S1", red_image)

    outcome = orchestrator.verify("S9", "C1")

    assert isinstance(outcome, Failed)
    assert outcome.reason is FailureReason.PROFILE_NOT_FOUND
    assert orchestrator.controller.active_sessions() == 0
