"""
File utilities
Xác thực ảnh upload (file hoặc base64) và chuyển thành core Image
"""
import base64
import binascii
import io
import os

from PIL import Image as PILImage
from werkzeug.utils import secure_filename

from app.config import ALLOWED_EXTENSIONS, MAX_FILE_SIZE, MIN_FILE_SIZE, SUPPORTED_IMAGE_FORMATS
from core.errors import ImageDecodeError
from core.vision.image import Image


def validate_image_bytes(data):
    """
    Xác thực dữ liệu ảnh.
    Returns: (success: bool, error_message: str)
    """
    size = len(data or b'')
    if size < MIN_FILE_SIZE:
        return False, f"File quá nhỏ (tối thiểu {MIN_FILE_SIZE} bytes)"
    if size > MAX_FILE_SIZE:
        return False, f"File quá lớn (tối đa {MAX_FILE_SIZE} bytes)"

    try:
        with PILImage.open(io.BytesIO(data)) as img:
            image_format = img.format
            img.verify()
    except Exception as e:
        return False, f"Ảnh không hợp lệ: {str(e)}"

    if image_format not in SUPPORTED_IMAGE_FORMATS:
        return False, f"Định dạng ảnh không được hỗ trợ: {image_format}"
    return True, ""


def _decode_validated(data):
    success, error_msg = validate_image_bytes(data)
    if not success:
        raise ValueError(error_msg)
    try:
        return Image.decode(data)
    except ImageDecodeError as exc:
        raise ValueError(f"Ảnh không hợp lệ: {exc}") from exc


def load_uploaded_image(file_storage):
    """Đọc ảnh từ FileStorage (multipart) sau khi xác thực phần mở rộng và nội dung."""
    if not file_storage or not file_storage.filename:
        raise ValueError('Thiếu file ảnh')

    filename = secure_filename(file_storage.filename) or file_storage.filename
    _, ext = os.path.splitext(filename)
    ext = (ext or '').lower().lstrip('.')
    if ext not in ALLOWED_EXTENSIONS:
        raise ValueError(f"Định dạng file không hợp lệ. Chỉ cho phép: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    return _decode_validated(file_storage.read())


def load_base64_image(image_data):
    """Giải mã ảnh base64 (có thể kèm data URL prefix) thành core Image."""
    if not image_data:
        raise ValueError('Thiếu dữ liệu ảnh')

    if ',' in image_data:
        image_data = image_data.split(',', 1)[1]
    try:
        img_bytes = base64.b64decode(image_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError('Ảnh không hợp lệ: Không thể giải mã dữ liệu base64') from exc

    return _decode_validated(img_bytes)


def load_request_image(files, data):
    """Lấy ảnh tham chiếu từ request: file `face_image` hoặc base64 `image_data`."""
    file_storage = files.get('face_image') if files else None
    if file_storage and file_storage.filename:
        return load_uploaded_image(file_storage)
    return load_base64_image(data.get('image_data'))
