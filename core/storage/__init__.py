from .blob_store import BlobReference, BlobStore, LocalBlobStore, MinioBlobStore
from .progress import ProgressEvent, ProgressStream, ProgressTracker
from .uploader import ReferenceUploader

__all__ = [
    'BlobReference',
    'BlobStore',
    'LocalBlobStore',
    'MinioBlobStore',
    'ProgressEvent',
    'ProgressStream',
    'ProgressTracker',
    'ReferenceUploader',
]
