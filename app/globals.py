"""
Global state module
Service singletons, khởi tạo trong app/__init__.py (create_app)
"""

# Singleton instances (sẽ được khởi tạo trong app/__init__.py)
database = None
capture_controller = None
event_broadcaster = None
attendance_service = None
