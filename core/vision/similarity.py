"""Pixel-level similarity scoring between a captured frame and a reference.

The metric resamples both images to a fixed square grid and compares the
RGB channels position by position. It is a coarse, auditable check, not a
face-embedding model: lighting changes or similarly coloured faces move the
score just as much as identity does.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from core.vision.image import Image


logger = logging.getLogger(__name__)

DEFAULT_GRID_SIZE = 100
DEFAULT_THRESHOLD = 0.7
RESAMPLE_INTERPOLATION = cv2.INTER_LINEAR


@dataclass(frozen=True)
class MatchResult:
    score: float
    threshold: float

    @property
    def accepted(self) -> bool:
        return self.score >= self.threshold


def resample(image: Image, grid_size: int = DEFAULT_GRID_SIZE) -> np.ndarray:
    """Return the RGB channels of ``image`` stretched onto a grid_size square."""
    rgb = np.ascontiguousarray(image.pixels[:, :, :3])
    if image.width == grid_size and image.height == grid_size:
        return rgb
    return cv2.resize(rgb, (grid_size, grid_size), interpolation=RESAMPLE_INTERPOLATION)


def similarity_score(first: Image, second: Image, grid_size: int = DEFAULT_GRID_SIZE) -> float:
    """1.0 for identical images at the sampled resolution, 0.0 for maximal difference."""
    if grid_size <= 0:
        raise ValueError("grid_size must be positive")
    a = resample(first, grid_size).astype(np.int32)
    b = resample(second, grid_size).astype(np.int32)
    difference = int(np.abs(a - b).sum())
    max_difference = grid_size * grid_size * 3 * 255
    score = 1.0 - difference / max_difference
    return float(min(1.0, max(0.0, score)))


class SimilarityScorer:
    """Scores image pairs, optionally on a background worker pool."""

    def __init__(
        self,
        grid_size: int = DEFAULT_GRID_SIZE,
        threshold: float = DEFAULT_THRESHOLD,
        *,
        max_workers: int = 2,
    ) -> None:
        if grid_size <= 0:
            raise ValueError("grid_size must be positive")
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [0.0, 1.0]")
        self.grid_size = int(grid_size)
        self.threshold = float(threshold)
        self._max_workers = max(1, int(max_workers))
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    def score(self, first: Image, second: Image) -> float:
        return similarity_score(first, second, self.grid_size)

    def match(self, captured: Image, reference: Image) -> MatchResult:
        score = self.score(captured, reference)
        result = MatchResult(score=score, threshold=self.threshold)
        logger.debug("Similarity %.4f (threshold %.2f, accepted=%s)", score, self.threshold, result.accepted)
        return result

    def submit(self, captured: Image, reference: Image) -> "Future[MatchResult]":
        """Schedule ``match`` on the worker pool and return its future."""
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="scorer")
            executor = self._executor
        return executor.submit(self.match, captured, reference)

    def shutdown(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
