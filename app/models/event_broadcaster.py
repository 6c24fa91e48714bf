"""
Event Broadcaster - Quản lý Server-Sent Events (SSE)
Fans upload-progress and verification events out to connected clients
"""
import json
import queue
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional


def format_sse_message(event_data: Dict[str, Any]) -> str:
    """Format data thành SSE message format"""
    event_type = event_data.get('type', 'message')

    # SSE format: event: type\ndata: json\n\n
    message_lines = [
        f"event: {event_type}",
        f"data: {json.dumps(event_data, default=str)}",
        "",
        "",
    ]
    return "\n".join(message_lines)


class EventBroadcaster:
    """Service quản lý SSE events cho thông báo real-time"""

    def __init__(self, logger=None, queue_size: int = 50):
        self.clients: List[queue.Queue] = []
        self.clients_lock = threading.Lock()
        self.logger = logger
        self.queue_size = queue_size

    def add_client(self) -> queue.Queue:
        """Thêm client mới và trả về queue của client đó"""
        client_queue = queue.Queue(maxsize=self.queue_size)

        with self.clients_lock:
            self.clients.append(client_queue)
            total = len(self.clients)

        if self.logger:
            self.logger.info(f"[SSE] New client connected. Total: {total}")

        return client_queue

    def remove_client(self, client_queue: queue.Queue):
        """Xóa client khi disconnect"""
        with self.clients_lock:
            if client_queue not in self.clients:
                return
            self.clients.remove(client_queue)
            remaining = len(self.clients)

        if self.logger:
            self.logger.info(f"[SSE] Client disconnected. Remaining: {remaining}")

    def broadcast_event(self, event_data: Dict[str, Any]):
        """
        Broadcast event đến tất cả clients

        Args:
            event_data: Dictionary chứa event data
                - type: Loại event (vd: 'upload_progress', 'verification_outcome')
                - data: Dữ liệu của event
                - timestamp: Thời gian (optional, sẽ tự động thêm nếu không có)
        """
        if 'timestamp' not in event_data:
            event_data['timestamp'] = datetime.now().isoformat()

        disconnected_clients = []

        with self.clients_lock:
            for client_queue in self.clients:
                try:
                    client_queue.put_nowait(event_data)
                except queue.Full:
                    disconnected_clients.append(client_queue)
                    if self.logger:
                        self.logger.warning("[SSE] Client queue full, marking for removal")

        for client_queue in disconnected_clients:
            self.remove_client(client_queue)

    def broadcast_upload_progress(self, event):
        """Forward a core ProgressEvent; registered as a ProgressStream listener."""
        self.broadcast_event({
            'type': 'upload_progress',
            'data': event.to_dict(),
        })

    def broadcast_verification_stage(self, attempt: int, stage):
        self.broadcast_event({
            'type': 'verification_stage',
            'data': {
                'attempt': attempt,
                'stage': getattr(stage, 'value', stage),
            }
        })

    def broadcast_verification_outcome(self, subject_id: str, class_id: str, outcome):
        """Broadcast the final outcome of one verify call"""
        payload = outcome.to_dict()
        payload.update({'subject_id': subject_id, 'class_id': class_id})
        self.broadcast_event({
            'type': 'verification_outcome',
            'data': payload,
        })

    def get_client_count(self) -> int:
        """Lấy số lượng clients đang kết nối"""
        with self.clients_lock:
            return len(self.clients)

    def cleanup(self):
        """Cleanup tất cả clients"""
        with self.clients_lock:
            self.clients.clear()

        if self.logger:
            self.logger.info("[SSE] All clients removed")
