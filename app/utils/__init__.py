"""
Utils package
"""
from .file_utils import (
    validate_image_bytes,
    load_uploaded_image,
    load_base64_image,
    load_request_image
)
from .data_utils import (
    parse_date_safe,
    get_request_data,
    first_value
)
from .export_utils import (
    sanitize_csv_value,
    build_export_filename,
    records_to_csv
)

__all__ = [
    'validate_image_bytes',
    'load_uploaded_image',
    'load_base64_image',
    'load_request_image',
    'parse_date_safe',
    'get_request_data',
    'first_value',
    'sanitize_csv_value',
    'build_export_filename',
    'records_to_csv'
]
