"""
Services package
"""
from .attendance_service import AttendanceService, StudentExistsError, StudentNotFoundError

__all__ = [
    'AttendanceService',
    'StudentExistsError',
    'StudentNotFoundError',
]
