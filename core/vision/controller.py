"""Capture controller: exclusive device acquisition with guaranteed release."""
from __future__ import annotations

import itertools
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, Optional

from core.errors import (
    CameraError,
    CaptureFailedError,
    CaptureStateError,
    DeviceUnavailableError,
    FailureReason,
)
from core.vision.camera_manager import (
    CameraProvider,
    CaptureConfig,
    CaptureSession,
    CaptureState,
    ControllerConfig,
    DefaultCameraProvider,
    DeviceRegistry,
    classify_open_error,
    configure_capture,
    read_single_frame,
)
from core.vision.image import Image


class CaptureController:
    """Owns camera sessions and enforces one active session per device."""

    def __init__(
        self,
        provider: Optional[CameraProvider] = None,
        *,
        config: Optional[ControllerConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.provider = provider or DefaultCameraProvider()
        self.config = config or ControllerConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._registry = DeviceRegistry()
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        self._sessions: Dict[int, CaptureSession] = {}

    # ------------------------------------------------------------------
    # Internal helpers
    def _fail(self, session: CaptureSession, error: CameraError) -> None:
        """Move ``session`` to FAILED and free whatever it holds."""
        handle = session.handle
        session.handle = None
        if handle is not None:
            try:
                handle.release()
            except Exception as exc:  # pragma: no cover - driver dependent
                self._logger.debug("[Camera] release() after failure raised: %s", exc)
        if not session.is_terminal:
            session.state = CaptureState.FAILED
            session.failure = error.reason
        self._registry.release(session.device, session.session_id)
        with self._lock:
            self._sessions.pop(session.session_id, None)

    # ------------------------------------------------------------------
    # Public API
    def acquire(self, config: CaptureConfig) -> CaptureSession:
        """Open the device for ``config``.

        Raises UnsupportedError, PermissionDeniedError or DeviceUnavailableError.
        A device already held by another session is reported as unavailable
        and the holder is left untouched.
        """
        session_id = next(self._ids)
        try:
            device = self.provider.resolve_device(config)
        except Exception as exc:
            raise classify_open_error(exc) from exc
        session = CaptureSession(session_id=session_id, device=device, config=config)

        if not self._registry.claim(device, session_id):
            holder = self._registry.holder(device)
            session.state = CaptureState.FAILED
            session.failure = FailureReason.DEVICE_UNAVAILABLE
            self._logger.warning("[Camera] device %s busy (held by session %s)", device, holder)
            raise DeviceUnavailableError(f"Camera {device} is in use by session {holder}")

        session._transition(CaptureState.REQUESTING)
        try:
            handle = self.provider.open(device, config)
            session.handle = handle
            configure_capture(handle, config, self.config)
        except Exception as exc:
            error = classify_open_error(exc)
            self._fail(session, error)
            self._logger.error("[Camera] acquire failed on device %s: %s", device, error)
            raise error from exc
        except BaseException:
            self._fail(session, DeviceUnavailableError(f"Opening camera {device} was interrupted"))
            self._logger.warning("[Camera] acquire on device %s interrupted, claim released", device)
            raise

        session._transition(CaptureState.ACTIVE)
        session.opened_at = datetime.now()
        with self._lock:
            self._sessions[session_id] = session
        self._logger.info("[Camera] session %s acquired device %s", session_id, device)
        return session

    def capture(self, session: CaptureSession) -> Image:
        """Read one frame. The session stays ACTIVE when no frame arrives."""
        if session.state != CaptureState.ACTIVE:
            raise CaptureStateError(
                f"capture() requires an active session, session {session.session_id} is {session.state.value}"
            )
        session._transition(CaptureState.CAPTURING)
        try:
            image = read_single_frame(session, self.config)
        except CaptureFailedError:
            session._transition(CaptureState.ACTIVE)
            raise
        except Exception as exc:
            error = exc if isinstance(exc, CameraError) else CaptureFailedError(str(exc))
            self._fail(session, error)
            raise error from exc
        session.frames_captured += 1
        session._transition(CaptureState.ACTIVE)
        return image

    def release(self, session: Optional[CaptureSession]) -> None:
        """Free the device binding. Safe to call any number of times."""
        if session is None:
            return
        handle = session.handle
        session.handle = None
        if handle is not None:
            try:
                handle.release()
            except Exception as exc:  # pragma: no cover - driver dependent
                self._logger.debug("[Camera] release() raised: %s", exc)
        if not session.is_terminal:
            session.state = CaptureState.STOPPED
            self._logger.info("[Camera] session %s released device %s", session.session_id, session.device)
        self._registry.release(session.device, session.session_id)
        with self._lock:
            self._sessions.pop(session.session_id, None)

    @contextmanager
    def session(self, config: CaptureConfig) -> Iterator[CaptureSession]:
        """Scoped acquisition; the device is released on every exit path."""
        active = self.acquire(config)
        try:
            yield active
        finally:
            self.release(active)

    def active_sessions(self) -> int:
        with self._lock:
            return len(self._sessions)

    def release_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            self.release(session)

    def status(self) -> dict:
        with self._lock:
            sessions = [
                {
                    "session_id": s.session_id,
                    "device": s.device,
                    "state": s.state.value,
                    "facing": s.config.facing,
                    "resolution": f"{s.config.width}x{s.config.height}",
                    "frames_captured": s.frames_captured,
                    "opened_at": s.opened_at.isoformat() if s.opened_at else None,
                }
                for s in self._sessions.values()
            ]
        return {
            "active_sessions": len(sessions),
            "devices_in_use": sorted(self._registry.snapshot()),
            "sessions": sessions,
        }
