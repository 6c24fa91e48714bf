"""
Configuration constants và settings
Environment-driven defaults; a .env file is loaded by run.py before import.
"""
import os
from pathlib import Path

# Upload configuration
ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png'}
SUPPORTED_IMAGE_FORMATS = {'JPEG', 'PNG'}
MIN_FILE_SIZE = 100  # bytes
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', str(16 * 1024 * 1024)))
UPLOAD_CHUNK_SIZE = max(1024, int(os.getenv('UPLOAD_CHUNK_SIZE', str(64 * 1024))))

# Directory paths
DATA_FOLDER = os.getenv('DATA_FOLDER', 'data')
DATA_DIR = Path(DATA_FOLDER)
DATABASE_PATH = os.getenv('DATABASE_PATH', str(DATA_DIR / 'attendance_system.db'))
LOG_DIR = os.getenv('LOG_DIR', 'logs')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# Camera configuration
CAMERA_INDEX = int(os.getenv('CAMERA_INDEX', '0'))
_back_index = os.getenv('CAMERA_BACK_INDEX', '').strip()
CAMERA_BACK_INDEX = int(_back_index) if _back_index else None
CAMERA_WIDTH = int(os.getenv('CAMERA_WIDTH', '640'))
CAMERA_HEIGHT = int(os.getenv('CAMERA_HEIGHT', '480'))
CAMERA_MAX_WIDTH = int(os.getenv('CAMERA_MAX_WIDTH', '1920'))
CAMERA_MAX_HEIGHT = int(os.getenv('CAMERA_MAX_HEIGHT', '1080'))
CAMERA_QUALITY = float(os.getenv('CAMERA_QUALITY', '0.95'))
CAMERA_FACING = os.getenv('CAMERA_FACING', 'front').strip().lower()
CAMERA_WARMUP_FRAMES = int(os.getenv('CAMERA_WARMUP_FRAMES', '3'))
CAMERA_BUFFER_SIZE = int(os.getenv('CAMERA_BUFFER_SIZE', '2'))
CAMERA_FRAME_TIMEOUT = float(os.getenv('CAMERA_FRAME_TIMEOUT', '2.0'))

# Matching configuration
MATCH_THRESHOLD = float(os.getenv('MATCH_THRESHOLD', '0.7'))
SIMILARITY_GRID_SIZE = int(os.getenv('SIMILARITY_GRID_SIZE', '100'))
SCORER_WORKERS = max(1, int(os.getenv('SCORER_WORKERS', '2')))
SCORING_TIMEOUT = float(os.getenv('SCORING_TIMEOUT', '10'))

# Blob storage
BLOB_BACKEND = os.getenv('BLOB_BACKEND', 'local').strip().lower()
BLOB_DIR = os.getenv('BLOB_DIR', str(DATA_DIR / 'blobs'))
MINIO_ENDPOINT = os.getenv('MINIO_ENDPOINT', 'localhost:9000')
MINIO_ACCESS_KEY = os.getenv('MINIO_ACCESS_KEY', 'minioadmin')
MINIO_SECRET_KEY = os.getenv('MINIO_SECRET_KEY', 'minioadmin')
MINIO_BUCKET = os.getenv('MINIO_BUCKET', 'reference-images')
MINIO_SECURE = os.getenv('MINIO_SECURE', 'false').lower() in ('true', '1', 'yes')
MINIO_PUBLIC_URL = os.getenv('MINIO_PUBLIC_URL') or None

# Flask
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

# SSE
SSE_HEARTBEAT_SECONDS = 30
SSE_QUEUE_SIZE = 50


def default_settings():
    """Snapshot of the module constants as a plain dict (overridable per app)."""
    return {
        'SECRET_KEY': SECRET_KEY,
        'MAX_CONTENT_LENGTH': MAX_CONTENT_LENGTH,
        'DATABASE_PATH': DATABASE_PATH,
        'LOG_DIR': LOG_DIR,
        'LOG_LEVEL': LOG_LEVEL,
        'CAMERA_INDEX': CAMERA_INDEX,
        'CAMERA_BACK_INDEX': CAMERA_BACK_INDEX,
        'CAMERA_WIDTH': CAMERA_WIDTH,
        'CAMERA_HEIGHT': CAMERA_HEIGHT,
        'CAMERA_MAX_WIDTH': CAMERA_MAX_WIDTH,
        'CAMERA_MAX_HEIGHT': CAMERA_MAX_HEIGHT,
        'CAMERA_QUALITY': CAMERA_QUALITY,
        'CAMERA_FACING': CAMERA_FACING,
        'CAMERA_WARMUP_FRAMES': CAMERA_WARMUP_FRAMES,
        'CAMERA_BUFFER_SIZE': CAMERA_BUFFER_SIZE,
        'CAMERA_FRAME_TIMEOUT': CAMERA_FRAME_TIMEOUT,
        'MATCH_THRESHOLD': MATCH_THRESHOLD,
        'SIMILARITY_GRID_SIZE': SIMILARITY_GRID_SIZE,
        'SCORER_WORKERS': SCORER_WORKERS,
        'SCORING_TIMEOUT': SCORING_TIMEOUT,
        'BLOB_BACKEND': BLOB_BACKEND,
        'BLOB_DIR': BLOB_DIR,
        'UPLOAD_CHUNK_SIZE': UPLOAD_CHUNK_SIZE,
        'MINIO_ENDPOINT': MINIO_ENDPOINT,
        'MINIO_ACCESS_KEY': MINIO_ACCESS_KEY,
        'MINIO_SECRET_KEY': MINIO_SECRET_KEY,
        'MINIO_BUCKET': MINIO_BUCKET,
        'MINIO_SECURE': MINIO_SECURE,
        'MINIO_PUBLIC_URL': MINIO_PUBLIC_URL,
    }
