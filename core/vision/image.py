"""Immutable RGBA image container used by capture, scoring and upload."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

import cv2
import numpy as np

from core.errors import ImageDecodeError

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
DEFAULT_JPEG_QUALITY = 0.95


def _as_rgba(frame: np.ndarray, *, order: str) -> np.ndarray:
    """Convert a grayscale, 3- or 4-channel frame into RGBA uint8."""
    if frame.dtype == np.uint16:
        frame = (frame >> 8).astype(np.uint8)
    elif frame.dtype != np.uint8:
        frame = np.clip(frame, 0, 255).astype(np.uint8)

    if frame.ndim == 2:
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
    channels = frame.shape[2]
    if channels == 1:
        return cv2.cvtColor(frame[:, :, 0], cv2.COLOR_GRAY2RGBA)
    if channels == 3:
        code = cv2.COLOR_BGR2RGBA if order == "bgr" else cv2.COLOR_RGB2RGBA
        return cv2.cvtColor(frame, code)
    if channels == 4:
        if order == "bgr":
            return cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
        return frame.copy()
    raise ImageDecodeError(f"Unsupported channel count: {channels}")


@dataclass(frozen=True, eq=False)
class Image:
    """Owned 2-D grid of RGBA pixels.

    ``pixels`` is a read-only ``(height, width, 4)`` uint8 array. ``encoded``
    holds the compressed bytes the image was produced from (or captured as),
    so uploads never have to re-encode.
    """

    pixels: np.ndarray
    encoded: Optional[bytes] = None
    content_type: str = "image/jpeg"
    captured_at: Optional[datetime] = field(default=None)

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected an (H, W, 4) RGBA array, got shape {pixels.shape}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("Image must have non-zero width and height")
        pixels = np.array(pixels, dtype=np.uint8, copy=True, order="C")
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    # ------------------------------------------------------------------
    # Constructors
    @classmethod
    def from_bgr(cls, frame: np.ndarray, **kwargs) -> "Image":
        """Build an image from an OpenCV (BGR/BGRA/gray) frame."""
        return cls(_as_rgba(np.asarray(frame), order="bgr"), **kwargs)

    @classmethod
    def from_rgb(cls, array: np.ndarray, **kwargs) -> "Image":
        return cls(_as_rgba(np.asarray(array), order="rgb"), **kwargs)

    @classmethod
    def filled(cls, width: int, height: int, rgb: Tuple[int, int, int], alpha: int = 255) -> "Image":
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :, :3] = rgb
        pixels[:, :, 3] = alpha
        return cls(pixels)

    @classmethod
    def decode(cls, data: bytes) -> "Image":
        """Decode JPEG/PNG/WebP bytes. Raises ImageDecodeError on bad input."""
        if not data:
            raise ImageDecodeError("Empty image payload")
        buffer = np.frombuffer(data, dtype=np.uint8)
        frame = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
        if frame is None:
            raise ImageDecodeError("Unable to decode image bytes")
        content_type = "image/png" if data.startswith(PNG_SIGNATURE) else "image/jpeg"
        return cls(_as_rgba(frame, order="bgr"), encoded=bytes(data), content_type=content_type)

    # ------------------------------------------------------------------
    # Conversions
    def to_bgr(self) -> np.ndarray:
        return cv2.cvtColor(self.pixels, cv2.COLOR_RGBA2BGR)

    def encode(self, quality: float = DEFAULT_JPEG_QUALITY) -> bytes:
        """Encode the pixels as JPEG; ``quality`` in [0, 1] maps to JPEG quality 0-100."""
        jpeg_quality = int(round(max(0.0, min(1.0, float(quality))) * 100))
        ok, buf = cv2.imencode(".jpg", self.to_bgr(), [int(cv2.IMWRITE_JPEG_QUALITY), jpeg_quality])
        if not ok:
            raise ImageDecodeError("Unable to encode image as JPEG")
        return buf.tobytes()

    def to_bytes(self) -> bytes:
        """Return the original encoding when present, otherwise a fresh JPEG."""
        if self.encoded is not None:
            return self.encoded
        return self.encode()

    def __repr__(self) -> str:
        return f"Image({self.width}x{self.height}, encoded={len(self.encoded) if self.encoded else 0}B)"
