"""
API routes for camera
Trạng thái các phiên camera đang mở
"""
from flask import Blueprint, current_app, jsonify

from app import globals as app_globals

camera_api_bp = Blueprint('camera_api', __name__, url_prefix='/api/camera')


@camera_api_bp.route('/status', methods=['GET'])
def api_camera_status():
    try:
        status = app_globals.attendance_service.camera_status()
        return jsonify({'success': True, 'data': status})
    except Exception as e:
        current_app.logger.error(f"Error reading camera status: {e}", exc_info=True)
        return jsonify({'success': False, 'message': str(e)}), 500
