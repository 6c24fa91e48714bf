"""Tests for capture session lifecycle and device exclusivity."""

import cv2
import pytest

from core.errors import (
    CaptureFailedError,
    CaptureStateError,
    DeviceUnavailableError,
    FailureReason,
    PermissionDeniedError,
    UnsupportedError,
)
from core.vision import CaptureConfig, CaptureController, CaptureState

from conftest import TEST_HEIGHT, TEST_WIDTH, FakeProvider, noise_frame


def test_acquire_capture_release_cycle(controller, provider, capture_config) -> None:
    session = controller.acquire(capture_config)

    assert session.state is CaptureState.ACTIVE
    assert controller.status()["devices_in_use"] == [0]

    image = controller.capture(session)
    assert image.size == (TEST_WIDTH, TEST_HEIGHT)
    assert image.captured_at is not None
    assert image.encoded
    assert session.frames_captured == 1
    assert session.state is CaptureState.ACTIVE

    controller.release(session)
    assert session.state is CaptureState.STOPPED
    assert provider.captures[0].released is True
    assert controller.active_sessions() == 0


def test_capture_keeps_exact_pixels(controller_config, capture_config) -> None:
    frame = noise_frame(seed=11)
    controller = CaptureController(FakeProvider(frame), config=controller_config)

    with controller.session(capture_config) as session:
        image = controller.capture(session)

    assert (image.to_bgr() == frame).all()


def test_capture_resizes_to_requested_resolution(controller_config) -> None:
    controller = CaptureController(FakeProvider(noise_frame(width=128, height=96)), config=controller_config)

    with controller.session(CaptureConfig(width=32, height=24)) as session:
        image = controller.capture(session)

    assert image.size == (32, 24)


def test_configure_applies_resolution(controller, provider, capture_config) -> None:
    with controller.session(capture_config):
        props = provider.captures[0].props

    assert props[cv2.CAP_PROP_FRAME_WIDTH] == TEST_WIDTH
    assert props[cv2.CAP_PROP_FRAME_HEIGHT] == TEST_HEIGHT


def test_second_acquire_on_held_device_fails_without_disturbing_holder(controller, capture_config) -> None:
    holder = controller.acquire(capture_config)

    with pytest.raises(DeviceUnavailableError):
        controller.acquire(capture_config)

    assert holder.state is CaptureState.ACTIVE
    assert controller.capture(holder) is not None
    controller.release(holder)


def test_other_facing_uses_a_different_device(controller, capture_config) -> None:
    front = controller.acquire(capture_config)
    back = controller.acquire(CaptureConfig(facing="back", width=TEST_WIDTH, height=TEST_HEIGHT))

    assert {front.device, back.device} == {0, 1}
    controller.release_all()
    assert controller.active_sessions() == 0


@pytest.mark.parametrize(
    "error,expected",
    [
        (PermissionError("denied"), PermissionDeniedError),
        (UnsupportedError("no camera api"), UnsupportedError),
        (DeviceUnavailableError("unplugged"), DeviceUnavailableError),
        (cv2.error("backend failure"), DeviceUnavailableError),
    ],
)
def test_open_errors_are_classified_and_device_freed(controller_config, capture_config, error, expected) -> None:
    controller = CaptureController(FakeProvider(open_error=error), config=controller_config)

    with pytest.raises(expected):
        controller.acquire(capture_config)

    assert controller.status()["devices_in_use"] == []
    assert controller.active_sessions() == 0


def test_interrupted_open_frees_device_for_next_acquire(controller_config, capture_config) -> None:
    provider = FakeProvider(open_error=KeyboardInterrupt())
    controller = CaptureController(provider, config=controller_config)

    with pytest.raises(KeyboardInterrupt):
        controller.acquire(capture_config)

    provider.open_error = None
    session = controller.acquire(capture_config)

    assert session.is_active
    controller.release(session)


def test_interrupted_configure_releases_opened_handle(controller, provider, capture_config, monkeypatch) -> None:
    def interrupted(*args, **kwargs):
        raise SystemExit(1)

    monkeypatch.setattr("core.vision.controller.configure_capture", interrupted)

    with pytest.raises(SystemExit):
        controller.acquire(capture_config)

    assert provider.captures[0].released is True
    assert controller.status()["devices_in_use"] == []
    assert controller.active_sessions() == 0


def test_capture_without_frame_keeps_session_active(controller_config, capture_config) -> None:
    provider = FakeProvider(fail_reads=True)
    controller = CaptureController(provider, config=controller_config)
    session = controller.acquire(capture_config)

    with pytest.raises(CaptureFailedError) as excinfo:
        controller.capture(session)

    assert excinfo.value.reason is FailureReason.CAPTURE_FAILED
    assert session.state is CaptureState.ACTIVE
    controller.release(session)
    assert provider.captures[0].released is True


def test_capture_after_release_is_rejected(controller, capture_config) -> None:
    session = controller.acquire(capture_config)
    controller.release(session)

    with pytest.raises(CaptureStateError):
        controller.capture(session)


def test_release_is_idempotent(controller, capture_config) -> None:
    session = controller.acquire(capture_config)

    controller.release(session)
    controller.release(session)
    controller.release(None)

    assert session.state is CaptureState.STOPPED


def test_session_context_releases_on_error(controller, capture_config) -> None:
    with pytest.raises(RuntimeError):
        with controller.session(capture_config) as session:
            raise RuntimeError("boom")

    assert session.state is CaptureState.STOPPED
    assert controller.status()["devices_in_use"] == []


def test_capture_config_validation() -> None:
    with pytest.raises(ValueError):
        CaptureConfig(facing="sideways")
    with pytest.raises(ValueError):
        CaptureConfig(width=0)
    with pytest.raises(ValueError):
        CaptureConfig(quality=1.5)
