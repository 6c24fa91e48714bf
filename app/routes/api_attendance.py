"""
API routes for attendance
Verify (capture + so khớp + ghi nhận), truy vấn và export CSV
"""
from flask import Blueprint, Response, current_app, jsonify, request

from app import globals as app_globals
from app.utils.data_utils import first_value, get_request_data, parse_date_safe
from app.utils.export_utils import build_export_filename, records_to_csv
from core.attendance import OutcomeStatus
from core.errors import FailureReason
from core.vision import CaptureConfig
from logging_config import get_client_ip

attendance_api_bp = Blueprint('attendance_api', __name__, url_prefix='/api/attendance')

FAILURE_STATUS_CODES = {
    FailureReason.INVALID_REQUEST: 400,
    FailureReason.PERMISSION_DENIED: 403,
    FailureReason.PROFILE_NOT_FOUND: 404,
    FailureReason.DEVICE_UNAVAILABLE: 409,
    FailureReason.UNSUPPORTED: 501,
    FailureReason.CAPTURE_FAILED: 503,
    FailureReason.PROFILE_UNAVAILABLE: 503,
    FailureReason.CANCELLED: 503,
}

OUTCOME_MESSAGES = {
    OutcomeStatus.ACCEPTED: 'Điểm danh thành công',
    OutcomeStatus.REJECTED: 'Khuôn mặt không khớp với ảnh đã đăng ký',
    OutcomeStatus.COMMIT_FAILED: 'Khuôn mặt khớp nhưng không thể lưu điểm danh',
}


def _capture_config_from(data):
    """CaptureConfig từ request, mặc định lấy theo cấu hình app."""
    cfg = current_app.config
    width = int(first_value(data, 'width', default=cfg['CAMERA_WIDTH']))
    height = int(first_value(data, 'height', default=cfg['CAMERA_HEIGHT']))
    if width > cfg['CAMERA_MAX_WIDTH'] or height > cfg['CAMERA_MAX_HEIGHT']:
        raise ValueError(
            f"độ phân giải tối đa {cfg['CAMERA_MAX_WIDTH']}x{cfg['CAMERA_MAX_HEIGHT']}, nhận {width}x{height}"
        )
    return CaptureConfig(
        facing=str(first_value(data, 'facing', default=cfg['CAMERA_FACING'])).strip().lower(),
        width=width,
        height=height,
        quality=float(first_value(data, 'quality', default=cfg['CAMERA_QUALITY'])),
    )


def _status_code_for(outcome):
    if outcome.status in (OutcomeStatus.ACCEPTED, OutcomeStatus.REJECTED):
        return 200
    if outcome.status == OutcomeStatus.COMMIT_FAILED:
        return 502
    return FAILURE_STATUS_CODES.get(outcome.reason, 500)


def _record_filters():
    """Bộ lọc chung cho records và export; ValueError khi ngày không hợp lệ."""
    args = request.args
    return {
        'subject_id': first_value(args, 'subject_id', 'student_id'),
        'class_id': args.get('class_id') or None,
        'start_date': parse_date_safe(args.get('start')),
        'end_date': parse_date_safe(args.get('end')),
    }


@attendance_api_bp.route('/verify', methods=['POST'])
def api_verify():
    """API xác minh khuôn mặt và ghi nhận điểm danh"""
    try:
        data = get_request_data()
        subject_id = str(first_value(data, 'subject_id', 'student_id', default='')).strip()
        class_id = str(first_value(data, 'class_id', default='')).strip()

        try:
            capture_config = _capture_config_from(data)
        except (TypeError, ValueError) as e:
            return jsonify({'success': False, 'message': f'Cấu hình camera không hợp lệ: {e}'}), 400

        current_app.logger.info(
            f"Verify request - Student: {subject_id}, Class: {class_id}, IP: {get_client_ip(request)}"
        )
        outcome = app_globals.attendance_service.verify(subject_id, class_id, capture_config)

        message = OUTCOME_MESSAGES.get(outcome.status) or getattr(outcome, 'message', '')
        return jsonify({
            'success': outcome.status == OutcomeStatus.ACCEPTED,
            'message': message,
            'outcome': outcome.to_dict(),
        }), _status_code_for(outcome)

    except Exception as e:
        current_app.logger.error(f"Error verifying attendance: {e}", exc_info=True)
        return jsonify({'success': False, 'message': 'Lỗi khi xác minh: ' + str(e)}), 500


@attendance_api_bp.route('/records', methods=['GET'])
def api_attendance_records():
    """Danh sách điểm danh theo sinh viên, lớp và khoảng ngày (mới nhất trước)"""
    try:
        try:
            filters = _record_filters()
        except ValueError:
            return jsonify({'success': False, 'message': 'Ngày không hợp lệ, dùng định dạng YYYY-MM-DD'}), 400

        records = app_globals.attendance_service.list_records(**filters)
        return jsonify({'success': True, 'count': len(records), 'data': records})

    except Exception as e:
        current_app.logger.error(f"Error loading attendance records: {e}", exc_info=True)
        return jsonify({'success': False, 'message': str(e)}), 500


@attendance_api_bp.route('/export', methods=['GET'])
def api_attendance_export():
    """Export điểm danh ra CSV"""
    try:
        try:
            filters = _record_filters()
        except ValueError:
            return jsonify({'success': False, 'message': 'Ngày không hợp lệ, dùng định dạng YYYY-MM-DD'}), 400

        records = app_globals.attendance_service.list_records(**filters)
        filename = build_export_filename()
        return Response(
            records_to_csv(records),
            mimetype='text/csv',
            headers={'Content-Disposition': f'attachment; filename="{filename}"'},
        )

    except Exception as e:
        current_app.logger.error(f"Error exporting attendance: {e}", exc_info=True)
        return jsonify({'success': False, 'message': str(e)}), 500
