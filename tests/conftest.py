"""Shared fixtures: a scriptable camera, test images and a Flask app."""

import base64

import cv2
import numpy as np
import pytest

from core.attendance import InMemoryAttendanceStore, InMemoryProfileStore, VerificationOrchestrator
from core.storage import LocalBlobStore
from core.vision import CaptureConfig, CaptureController, ControllerConfig, Image, SimilarityScorer

TEST_WIDTH = 64
TEST_HEIGHT = 48

RED_BGR = (0, 0, 255)
BLUE_BGR = (255, 0, 0)


def solid_frame(bgr, width=TEST_WIDTH, height=TEST_HEIGHT):
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, :] = bgr
    return frame


def noise_frame(seed=0, width=TEST_WIDTH, height=TEST_HEIGHT):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


def encode_png(frame):
    ok, buf = cv2.imencode(".png", frame)
    assert ok
    return buf.tobytes()


class FakeCapture:
    """Stands in for cv2.VideoCapture."""

    def __init__(self, frame=None, *, fail_reads=False):
        self.frame = frame if frame is not None else solid_frame(RED_BGR)
        self.fail_reads = fail_reads
        self.props = {}
        self.reads = 0
        self.released = False

    def isOpened(self):
        return not self.released

    def read(self):
        self.reads += 1
        if self.fail_reads:
            return False, None
        return True, self.frame.copy()

    def set(self, prop_id, value):
        self.props[prop_id] = value
        return True

    def get(self, prop_id):
        return float(self.props.get(prop_id, 0))

    def release(self):
        self.released = True


class FakeProvider:
    """Camera provider with device 0 for front and 1 for back facing."""

    def __init__(self, frame=None, *, open_error=None, fail_reads=False):
        self.frame = frame
        self.open_error = open_error
        self.fail_reads = fail_reads
        self.captures = []

    def resolve_device(self, config):
        return 1 if config.facing == "back" else 0

    def open(self, device, config):
        if self.open_error is not None:
            raise self.open_error
        capture = FakeCapture(self.frame, fail_reads=self.fail_reads)
        self.captures.append(capture)
        return capture


@pytest.fixture
def capture_config():
    return CaptureConfig(width=TEST_WIDTH, height=TEST_HEIGHT)


@pytest.fixture
def controller_config():
    return ControllerConfig(warmup_frames=1, buffer_size=None, frame_timeout=0.05, poll_interval=0.01)


@pytest.fixture
def provider():
    return FakeProvider(solid_frame(RED_BGR))


@pytest.fixture
def controller(provider, controller_config):
    return CaptureController(provider, config=controller_config)


@pytest.fixture
def profile_store():
    return InMemoryProfileStore()


@pytest.fixture
def attendance_store():
    return InMemoryAttendanceStore()


@pytest.fixture
def scorer():
    scorer = SimilarityScorer(max_workers=1)
    yield scorer
    scorer.shutdown()


@pytest.fixture
def orchestrator(controller, profile_store, attendance_store, scorer, capture_config):
    return VerificationOrchestrator(
        controller,
        profile_store,
        attendance_store,
        scorer,
        default_capture=capture_config,
    )


@pytest.fixture
def red_image():
    return Image.from_bgr(solid_frame(RED_BGR))


@pytest.fixture
def blue_image():
    return Image.from_bgr(solid_frame(BLUE_BGR))


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs", chunk_size=256)


@pytest.fixture
def app_provider():
    return FakeProvider(noise_frame())


@pytest.fixture
def app(tmp_path, app_provider):
    from app import create_app

    app = create_app(
        {
            "TESTING": True,
            "DATABASE_PATH": str(tmp_path / "attendance.db"),
            "BLOB_BACKEND": "local",
            "BLOB_DIR": str(tmp_path / "blobs"),
            "LOG_DIR": str(tmp_path / "logs"),
            "CAMERA_WIDTH": TEST_WIDTH,
            "CAMERA_HEIGHT": TEST_HEIGHT,
            "CAMERA_WARMUP_FRAMES": 0,
            "CAMERA_FRAME_TIMEOUT": 0.05,
        },
        camera_provider=app_provider,
    )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def matching_png():
    """PNG of exactly the frame the app camera returns."""
    return encode_png(noise_frame())


@pytest.fixture
def other_png():
    return encode_png(255 - noise_frame())


@pytest.fixture
def matching_png_b64(matching_png):
    return base64.b64encode(matching_png).decode("ascii")
