"""
App package initialization
Khởi tạo Flask application và cấu hình
"""
import atexit
import logging
import os

from flask import Flask

from app import config
from app import globals as app_globals
from app.models import EventBroadcaster
from app.services import AttendanceService
from core.attendance import BlobProfileStore, ReferenceRegistrar, VerificationOrchestrator, VerificationPolicy
from core.storage import LocalBlobStore, MinioBlobStore, ProgressStream, ReferenceUploader
from core.vision import CaptureConfig, CaptureController, ControllerConfig, DefaultCameraProvider, SimilarityScorer
from database import DatabaseManager
from logging_config import setup_logging


def _init_blob_store(app):
    """Khởi tạo blob storage theo BLOB_BACKEND (local | minio)"""
    backend = app.config['BLOB_BACKEND']
    if backend == 'minio':
        store = MinioBlobStore.from_settings(
            app.config['MINIO_ENDPOINT'],
            app.config['MINIO_ACCESS_KEY'],
            app.config['MINIO_SECRET_KEY'],
            app.config['MINIO_BUCKET'],
            secure=app.config['MINIO_SECURE'],
            public_url=app.config['MINIO_PUBLIC_URL'],
        )
        app.logger.info(f"[STARTUP] MinIO blob store: {app.config['MINIO_ENDPOINT']}/{app.config['MINIO_BUCKET']}")
        return store
    if backend != 'local':
        raise ValueError(f"Unknown BLOB_BACKEND {backend!r} (expected 'local' or 'minio')")

    store = LocalBlobStore(app.config['BLOB_DIR'], chunk_size=app.config['UPLOAD_CHUNK_SIZE'])
    app.logger.info(f"[STARTUP] Local blob store: {os.path.abspath(app.config['BLOB_DIR'])}")
    return store


def _init_capture_controller(app, camera_provider=None):
    provider = camera_provider or DefaultCameraProvider(
        front_index=app.config['CAMERA_INDEX'],
        back_index=app.config['CAMERA_BACK_INDEX'],
    )
    controller_config = ControllerConfig(
        warmup_frames=app.config['CAMERA_WARMUP_FRAMES'],
        buffer_size=app.config['CAMERA_BUFFER_SIZE'],
        frame_timeout=app.config['CAMERA_FRAME_TIMEOUT'],
    )
    return CaptureController(provider, config=controller_config, logger=logging.getLogger('capture'))


def default_capture_config(app):
    return CaptureConfig(
        facing=app.config['CAMERA_FACING'],
        width=app.config['CAMERA_WIDTH'],
        height=app.config['CAMERA_HEIGHT'],
        quality=app.config['CAMERA_QUALITY'],
    )


def create_app(overrides=None, *, camera_provider=None, blob_store=None):
    """Factory function để tạo Flask application

    ``overrides`` replaces individual settings from app/config.py; tests also
    inject a fake ``camera_provider`` and ``blob_store``.
    """
    app = Flask(__name__)

    app.config.update(config.default_settings())
    if overrides:
        app.config.update(overrides)

    setup_logging(app, app.config['LOG_LEVEL'], app.config['LOG_DIR'])

    app.logger.info(f"[STARTUP] Working directory: {os.getcwd()}")
    app.logger.info(f"[STARTUP] Database path: {os.path.abspath(app.config['DATABASE_PATH'])}")

    # 1. Database
    database = DatabaseManager(app.config['DATABASE_PATH'])

    # 2. Camera + scoring
    controller = _init_capture_controller(app, camera_provider)
    policy = VerificationPolicy(
        threshold=app.config['MATCH_THRESHOLD'],
        grid_size=app.config['SIMILARITY_GRID_SIZE'],
        scoring_timeout=app.config['SCORING_TIMEOUT'],
    )
    scorer = SimilarityScorer(policy.grid_size, policy.threshold, max_workers=app.config['SCORER_WORKERS'])
    app.logger.info(f"[STARTUP] Match threshold {policy.threshold}, grid {policy.grid_size}x{policy.grid_size}")

    # 3. Blob storage + upload progress
    store = blob_store or _init_blob_store(app)
    broadcaster = EventBroadcaster(logger=app.logger, queue_size=config.SSE_QUEUE_SIZE)
    progress_stream = ProgressStream()
    progress_stream.add_listener(broadcaster.broadcast_upload_progress)
    uploader = ReferenceUploader(store, stream=progress_stream)

    # 4. Verification flow
    profile_store = BlobProfileStore(database, store)
    registrar = ReferenceRegistrar(uploader, profile_store)
    orchestrator = VerificationOrchestrator(
        controller,
        profile_store,
        database,
        scorer,
        policy=policy,
        default_capture=default_capture_config(app),
        on_stage=broadcaster.broadcast_verification_stage,
        logger=logging.getLogger('verification'),
    )

    app_globals.database = database
    app_globals.capture_controller = controller
    app_globals.event_broadcaster = broadcaster
    app_globals.attendance_service = AttendanceService(
        orchestrator,
        registrar,
        database,
        store,
        broadcaster=broadcaster,
        logger=app.logger,
    )
    app.logger.info("[STARTUP] All services initialized successfully")

    def _shutdown():
        controller.release_all()
        scorer.shutdown()
        broadcaster.cleanup()

    atexit.register(_shutdown)

    # Đăng ký blueprints
    from app.routes import register_blueprints
    register_blueprints(app)

    return app
