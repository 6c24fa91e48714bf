"""
Data utilities
Helper functions cho data transformation và validation
"""
from datetime import date, datetime

from flask import request


def parse_date_safe(value):
    """
    Phân tích chuỗi ISO date (YYYY-MM-DD) thành date hoặc trả về None.
    Raises ValueError khi chuỗi không hợp lệ.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip()[:10], '%Y-%m-%d').date()


def get_request_data():
    """Lấy request data từ JSON hoặc form."""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def first_value(data, *keys, default=None):
    """Giá trị đầu tiên không rỗng trong data theo danh sách key (hỗ trợ tên cũ)."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return value
    return default
