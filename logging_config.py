"""
Cấu hình logging cho hệ thống điểm danh
"""

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path


def _rotating_handler(path, level, formatter, max_log_size, backup_count):
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(app, log_level='INFO', log_dir='logs', max_log_size=10*1024*1024, backup_count=5):
    """
    Thiết lập logging cho ứng dụng Flask

    Args:
        app: Flask app instance
        log_level: Mức độ log (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Thư mục chứa file log
        max_log_size: Kích thước tối đa của file log (bytes)
        backup_count: Số lượng file log backup
    """

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level_name = str(log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Main log with rotation
    file_handler = _rotating_handler(
        log_dir / 'verification.log', log_level, formatter, max_log_size, backup_count
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    error_handler = _rotating_handler(
        log_dir / 'errors.log', logging.ERROR, formatter, max_log_size, backup_count
    )

    # Attendance commits and profile registrations
    audit_handler = _rotating_handler(
        log_dir / 'audit.log', logging.INFO, formatter, max_log_size, backup_count
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Xóa handlers cũ nếu có
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(error_handler)

    audit_logger = logging.getLogger('audit')
    for handler in audit_logger.handlers[:]:
        audit_logger.removeHandler(handler)
        handler.close()
    audit_logger.addHandler(audit_handler)
    audit_logger.setLevel(logging.INFO)

    logging.getLogger('capture').setLevel(log_level)
    logging.getLogger('verification').setLevel(log_level)
    logging.getLogger('database').setLevel(logging.INFO)

    app.logger.setLevel(log_level)

    app.logger.info("=" * 50)
    app.logger.info("ATTENDANCE VERIFICATION STARTUP")
    app.logger.info(f"Timestamp: {datetime.now().isoformat()}")
    app.logger.info(f"Log Level: {level_name}")
    app.logger.info(f"Log Directory: {log_dir.absolute()}")
    app.logger.info("=" * 50)


class CaptureLogger:
    """Logger chuyên dụng cho camera devices"""

    def __init__(self):
        self.logger = logging.getLogger('capture')

    def log_failure(self, reason, message):
        """Log lỗi camera"""
        self.logger.warning(f"Capture failure - Reason: {reason}, Error: {message}")


class VerificationLogger:
    """Logger chuyên dụng cho verification outcomes"""

    def __init__(self):
        self.logger = logging.getLogger('verification')

    def log_outcome(self, subject_id, class_id, outcome):
        score = getattr(outcome, 'score', None)
        score_info = f", Score: {score:.4f}" if score is not None else ""
        reason = getattr(outcome, 'reason', None)
        reason_info = f", Reason: {getattr(reason, 'value', reason)}" if reason else ""
        self.logger.info(
            f"Verification {outcome.status.value} - Student: {subject_id}, Class: {class_id}{score_info}{reason_info}"
        )


class AuditLogger:
    """Logger chuyên dụng cho attendance commits và registrations"""

    def __init__(self):
        self.logger = logging.getLogger('audit')

    def log_attendance(self, subject_id, class_id, recorded_at, score=None):
        """Log điểm danh"""
        score_info = f", Score: {score:.4f}" if score is not None else ""
        self.logger.info(
            f"Attendance marked - Student: {subject_id}, Class: {class_id}, At: {recorded_at}{score_info}"
        )

    def log_registration(self, subject_id, reference_key, replaced=False):
        action = "REFERENCE REPLACED" if replaced else "REGISTERED"
        self.logger.info(f"Profile {action} - Student: {subject_id}, Blob: {reference_key}")

    def log_commit_failure(self, subject_id, class_id, reason):
        self.logger.error(f"Attendance commit FAILED - Student: {subject_id}, Class: {class_id}, Error: {reason}")


# Các instance logger toàn cục
capture_logger = CaptureLogger()
verification_logger = VerificationLogger()
audit_logger = AuditLogger()


def get_client_ip(request):
    """Lấy IP address của client"""
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    elif request.headers.get('X-Real-IP'):
        return request.headers.get('X-Real-IP')
    else:
        return request.remote_addr
