"""Camera device access: configs, providers and the session state machine."""
from __future__ import annotations

import errno
import glob
import logging
import os
import platform
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Protocol

import cv2

from core.errors import (
    CameraError,
    CaptureFailedError,
    CaptureStateError,
    DeviceUnavailableError,
    FailureReason,
    PermissionDeniedError,
    UnsupportedError,
)
from core.vision.image import Image


logger = logging.getLogger(__name__)

FACING_FRONT = "front"
FACING_BACK = "back"
FACINGS = (FACING_FRONT, FACING_BACK)


@dataclass(frozen=True)
class CaptureConfig:
    """Caller-supplied capture request; never mutated after session start."""

    facing: str = FACING_FRONT
    width: int = 640
    height: int = 480
    quality: float = 0.95

    def __post_init__(self) -> None:
        if self.facing not in FACINGS:
            raise ValueError(f"facing must be one of {FACINGS}, got {self.facing!r}")
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise ValueError("Capture resolution must be positive")
        if not 0.0 <= float(self.quality) <= 1.0:
            raise ValueError("quality must be within [0.0, 1.0]")


class CaptureState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    ACTIVE = "active"
    CAPTURING = "capturing"
    STOPPED = "stopped"
    FAILED = "failed"


TERMINAL_STATES = frozenset({CaptureState.STOPPED, CaptureState.FAILED})


class VideoCaptureLike(Protocol):
    def isOpened(self) -> bool:
        ...

    def read(self):
        ...

    def set(self, prop_id: int, value: float) -> bool:
        ...

    def get(self, prop_id: int) -> float:
        ...

    def release(self) -> None:
        ...


class CameraProvider(Protocol):
    """Abstraction for objects that can supply cv2.VideoCapture handles."""

    def resolve_device(self, config: CaptureConfig) -> int:
        ...

    def open(self, device: int, config: CaptureConfig) -> VideoCaptureLike:
        ...


class DefaultCameraProvider:
    """Real provider that uses OpenCV to create VideoCapture objects.

    ``front`` and ``back`` facings map to device indexes; a single-camera
    machine simply points both at index 0.
    """

    def __init__(self, front_index: int = 0, back_index: Optional[int] = None) -> None:
        self.front_index = int(front_index)
        self.back_index = int(back_index) if back_index is not None else self.front_index

    def resolve_device(self, config: CaptureConfig) -> int:
        return self.back_index if config.facing == FACING_BACK else self.front_index

    def open(self, device: int, config: CaptureConfig) -> VideoCaptureLike:
        self._probe(device)
        capture = cv2.VideoCapture(device)
        if capture is None or not capture.isOpened():
            if capture is not None:
                capture.release()
            raise DeviceUnavailableError(f"Cannot open camera index {device}")
        return capture

    def _probe(self, device: int) -> None:
        if not hasattr(cv2, "VideoCapture"):
            raise UnsupportedError("OpenCV build has no video capture support")
        if platform.system().lower() != "linux":
            return
        nodes = glob.glob("/dev/video*")
        if not nodes:
            raise UnsupportedError("No video devices present on this machine")
        node = f"/dev/video{device}"
        if not os.path.exists(node):
            raise DeviceUnavailableError(f"Camera {node} is disconnected")
        if not os.access(node, os.R_OK | os.W_OK):
            raise PermissionDeniedError(f"Access to {node} was refused")


@dataclass
class ControllerConfig:
    warmup_frames: int = 3
    buffer_size: Optional[int] = 2
    frame_timeout: float = 2.0
    poll_interval: float = 0.02


@dataclass
class CaptureSession:
    """Live binding to one camera device.

    The session owns ``handle`` exclusively; only the controller that created
    it may move it between states.
    """

    session_id: int
    device: int
    config: CaptureConfig
    state: CaptureState = CaptureState.IDLE
    failure: Optional[FailureReason] = None
    handle: Optional[VideoCaptureLike] = field(default=None, repr=False)
    opened_at: Optional[datetime] = None
    frames_captured: int = 0

    @property
    def is_active(self) -> bool:
        return self.state in (CaptureState.ACTIVE, CaptureState.CAPTURING)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _transition(self, new_state: CaptureState) -> None:
        if self.is_terminal:
            raise CaptureStateError(
                f"Session {self.session_id} is {self.state.value}; cannot move to {new_state.value}"
            )
        logger.debug("[Camera] session %s: %s -> %s", self.session_id, self.state.value, new_state.value)
        self.state = new_state


def configure_capture(capture: VideoCaptureLike, config: CaptureConfig, controller_config: ControllerConfig) -> None:
    """Apply resolution/buffer settings and drop the warmup frames."""
    try:
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, config.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, config.height)
        if controller_config.buffer_size is not None and hasattr(cv2, "CAP_PROP_BUFFERSIZE"):
            capture.set(cv2.CAP_PROP_BUFFERSIZE, controller_config.buffer_size)

        actual_w = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        actual_h = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        fps = capture.get(cv2.CAP_PROP_FPS)
        logger.info("Camera ready: %sx%s @ %.2f fps", actual_w, actual_h, fps or 0)
    except cv2.error as exc:
        logger.warning("Unable to configure camera: %s", exc)

    warmup = max(0, controller_config.warmup_frames)
    if warmup:
        logger.debug("Warming up camera (%s frames)", warmup)
        success = 0
        for _ in range(warmup):
            ret, _frame = capture.read()
            if ret:
                success += 1
        logger.debug("Warmup frames ok=%s/%s", success, warmup)


def read_single_frame(
    session: CaptureSession,
    controller_config: ControllerConfig,
) -> Image:
    """Read exactly one frame from ``session`` within the bounded wait."""
    capture = session.handle
    if capture is None:
        raise CaptureStateError(f"Session {session.session_id} has no device handle")

    deadline = time.monotonic() + max(0.0, controller_config.frame_timeout)
    frame = None
    while True:
        ret, candidate = capture.read()
        if ret and candidate is not None and getattr(candidate, "size", 0):
            frame = candidate
            break
        if time.monotonic() >= deadline:
            break
        time.sleep(controller_config.poll_interval)

    if frame is None:
        raise CaptureFailedError(
            f"No frame from camera {session.device} within {controller_config.frame_timeout:.2f}s"
        )

    config = session.config
    height, width = frame.shape[:2]
    if (width, height) != (config.width, config.height):
        frame = cv2.resize(frame, (config.width, config.height), interpolation=cv2.INTER_AREA)

    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(round(config.quality * 100))])
    if not ok:
        raise CaptureFailedError("Unable to encode captured frame")
    return Image.from_bgr(frame, encoded=buf.tobytes(), captured_at=datetime.now())


def classify_open_error(exc: BaseException) -> CameraError:
    """Map low-level errors raised while opening a device to the taxonomy."""
    if isinstance(exc, CameraError):
        return exc
    if isinstance(exc, PermissionError) or getattr(exc, "errno", None) in (errno.EACCES, errno.EPERM):
        return PermissionDeniedError(str(exc))
    if getattr(exc, "errno", None) == errno.EBUSY:
        return DeviceUnavailableError(str(exc))
    if isinstance(exc, (cv2.error, OSError)):
        return DeviceUnavailableError(str(exc))
    return CameraError(str(exc))


class DeviceRegistry:
    """Tracks which device indexes are held by an active session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holders: Dict[int, int] = {}

    def claim(self, device: int, session_id: int) -> bool:
        with self._lock:
            if device in self._holders:
                return False
            self._holders[device] = session_id
            return True

    def release(self, device: int, session_id: int) -> None:
        with self._lock:
            if self._holders.get(device) == session_id:
                del self._holders[device]

    def holder(self, device: int) -> Optional[int]:
        with self._lock:
            return self._holders.get(device)

    def snapshot(self) -> Dict[int, int]:
        with self._lock:
            return dict(self._holders)
