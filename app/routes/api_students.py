"""
API routes for students
Đăng ký hồ sơ sinh viên và ảnh tham chiếu
"""
import io

from flask import Blueprint, current_app, jsonify, request, send_file

from app import globals as app_globals
from app.services import StudentExistsError, StudentNotFoundError
from app.utils.data_utils import first_value, get_request_data
from app.utils.file_utils import load_request_image
from core.errors import InvalidRequestError, UploadFailedError

student_api_bp = Blueprint('student_api', __name__, url_prefix='/api/students')


@student_api_bp.route('', methods=['GET'])
def api_list_students():
    try:
        students = app_globals.attendance_service.list_students()
        return jsonify({'success': True, 'count': len(students), 'data': students})
    except Exception as e:
        current_app.logger.error(f"Error listing students: {e}", exc_info=True)
        return jsonify({'success': False, 'message': str(e)}), 500


@student_api_bp.route('', methods=['POST'])
def api_register_student():
    """API đăng ký sinh viên mới kèm ảnh tham chiếu (file `face_image` hoặc base64 `image_data`)"""
    try:
        data = get_request_data()
        subject_id = str(first_value(data, 'subject_id', 'student_id', default='')).strip()
        full_name = str(first_value(data, 'name', 'full_name', default='')).strip()

        if not subject_id:
            return jsonify({'success': False, 'message': 'Mã sinh viên là bắt buộc'}), 400

        try:
            image = load_request_image(request.files, data)
        except ValueError as err:
            return jsonify({'success': False, 'message': str(err)}), 400

        current_app.logger.info(f"Register request - ID: {subject_id}, Name: {full_name}")
        service = app_globals.attendance_service
        try:
            reference = service.register_student(subject_id, full_name, image)
        except StudentExistsError:
            return jsonify({'success': False, 'message': f'Student {subject_id} already exists'}), 409
        except InvalidRequestError as err:
            return jsonify({'success': False, 'message': str(err)}), 400
        except UploadFailedError as err:
            return jsonify({'success': False, 'message': f'Upload ảnh thất bại: {err}'}), 502

        return jsonify({
            'success': True,
            'message': f'Đăng ký thành công cho {full_name or subject_id}!',
            'student': service.get_student(subject_id),
            'reference': reference.to_dict(),
        }), 201

    except Exception as e:
        current_app.logger.error(f"Registration error: {e}", exc_info=True)
        return jsonify({'success': False, 'message': 'Lỗi khi đăng ký: ' + str(e)}), 500


@student_api_bp.route('/<subject_id>', methods=['GET'])
def api_get_student(subject_id):
    try:
        student = app_globals.attendance_service.get_student(subject_id)
        if not student:
            return jsonify({'success': False, 'message': 'Không tìm thấy sinh viên'}), 404
        return jsonify({'success': True, 'data': student})
    except Exception as e:
        current_app.logger.error(f"Error loading student {subject_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'message': str(e)}), 500


@student_api_bp.route('/<subject_id>/reference', methods=['PUT'])
def api_replace_reference(subject_id):
    """Thay ảnh tham chiếu của sinh viên đã đăng ký"""
    try:
        data = get_request_data()
        try:
            image = load_request_image(request.files, data)
        except ValueError as err:
            return jsonify({'success': False, 'message': str(err)}), 400

        try:
            reference = app_globals.attendance_service.replace_reference(subject_id, image)
        except StudentNotFoundError:
            return jsonify({'success': False, 'message': 'Không tìm thấy sinh viên'}), 404
        except UploadFailedError as err:
            return jsonify({'success': False, 'message': f'Upload ảnh thất bại: {err}'}), 502

        return jsonify({'success': True, 'message': 'Đã cập nhật ảnh tham chiếu', 'reference': reference.to_dict()})

    except Exception as e:
        current_app.logger.error(f"Error replacing reference for {subject_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'message': str(e)}), 500


@student_api_bp.route('/<subject_id>/reference', methods=['GET'])
def api_get_reference(subject_id):
    try:
        result = app_globals.attendance_service.get_reference_bytes(subject_id)
        if result is None:
            return jsonify({'success': False, 'message': 'Chưa có ảnh tham chiếu'}), 404
        data, content_type = result
        return send_file(io.BytesIO(data), mimetype=content_type)
    except Exception as e:
        current_app.logger.error(f"Error loading reference for {subject_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'message': str(e)}), 500


@student_api_bp.route('/<subject_id>', methods=['PUT'])
def api_update_student(subject_id):
    """Cập nhật thông tin sinh viên (họ tên)"""
    try:
        data = get_request_data()
        full_name = str(first_value(data, 'name', 'full_name', default='')).strip()
        if not full_name:
            return jsonify({'success': False, 'message': 'Tên sinh viên không được để trống'}), 400

        try:
            student = app_globals.attendance_service.update_student(subject_id, full_name)
        except StudentNotFoundError:
            return jsonify({'success': False, 'message': 'Không tìm thấy sinh viên'}), 404

        return jsonify({'success': True, 'message': 'Đã cập nhật sinh viên thành công', 'data': student})

    except Exception as e:
        current_app.logger.error(f"Error updating student {subject_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'message': str(e)}), 500
