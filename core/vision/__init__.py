from .camera_manager import (
    CaptureConfig,
    CaptureSession,
    CaptureState,
    ControllerConfig,
    DefaultCameraProvider,
    FACING_BACK,
    FACING_FRONT,
)
from .controller import CaptureController
from .image import Image
from .similarity import MatchResult, SimilarityScorer, similarity_score

__all__ = [
    'CaptureConfig',
    'CaptureSession',
    'CaptureState',
    'ControllerConfig',
    'DefaultCameraProvider',
    'FACING_BACK',
    'FACING_FRONT',
    'CaptureController',
    'Image',
    'MatchResult',
    'SimilarityScorer',
    'similarity_score',
]
