"""Unit tests for the pixel similarity metric and the scorer pool."""

import numpy as np
import pytest

from core.vision import Image, SimilarityScorer, similarity_score
from core.vision.similarity import MatchResult, resample


def test_identical_images_score_one(red_image) -> None:
    assert similarity_score(red_image, red_image) == 1.0


def test_opposite_images_score_zero() -> None:
    black = Image.filled(10, 10, (0, 0, 0))
    white = Image.filled(10, 10, (255, 255, 255))

    assert similarity_score(black, white) == 0.0


def test_alpha_channel_is_ignored() -> None:
    opaque = Image.filled(8, 8, (10, 20, 30), alpha=255)
    transparent = Image.filled(8, 8, (10, 20, 30), alpha=0)

    assert similarity_score(opaque, transparent) == 1.0


def test_score_matches_documented_formula() -> None:
    """A uniform difference of 51 on one channel costs 51 / (3 * 255)."""

    first = Image.filled(100, 100, (100, 100, 100))
    second = Image.filled(100, 100, (151, 100, 100))

    expected = 1.0 - (100 * 100 * 51) / (100 * 100 * 3 * 255)
    assert similarity_score(first, second) == pytest.approx(expected)


def test_images_of_different_sizes_are_resampled_to_the_grid() -> None:
    small = Image.filled(20, 10, (1, 2, 3))
    large = Image.filled(640, 480, (1, 2, 3))

    assert resample(small, 100).shape == (100, 100, 3)
    assert similarity_score(small, large) == 1.0


def test_score_is_symmetric() -> None:
    rng = np.random.default_rng(3)
    first = Image.from_rgb(rng.integers(0, 256, size=(30, 40, 3), dtype=np.uint8))
    second = Image.from_rgb(rng.integers(0, 256, size=(50, 20, 3), dtype=np.uint8))

    assert similarity_score(first, second) == pytest.approx(similarity_score(second, first))
    assert 0.0 <= similarity_score(first, second) <= 1.0


def test_invalid_grid_size_rejected(red_image) -> None:
    with pytest.raises(ValueError):
        similarity_score(red_image, red_image, grid_size=0)


@pytest.mark.parametrize(
    "score,accepted",
    [(0.7, True), (0.69999, False), (1.0, True), (0.0, False)],
)
def test_threshold_is_inclusive(score: float, accepted: bool) -> None:
    assert MatchResult(score=score, threshold=0.7).accepted is accepted


def test_scorer_submit_returns_future(red_image, blue_image) -> None:
    scorer = SimilarityScorer(grid_size=10, threshold=0.7, max_workers=1)
    try:
        result = scorer.submit(red_image, blue_image).result(timeout=5)
    finally:
        scorer.shutdown()

    assert isinstance(result, MatchResult)
    assert result.threshold == 0.7
    assert result.accepted is False


def test_scorer_rejects_bad_configuration() -> None:
    with pytest.raises(ValueError):
        SimilarityScorer(grid_size=-1)
    with pytest.raises(ValueError):
        SimilarityScorer(threshold=1.5)
