"""
API routes for Server-Sent Events (SSE)
Upload progress và verification events theo thời gian thực
"""
import queue

from flask import Blueprint, Response, stream_with_context

from app import config
from app import globals as app_globals
from app.models import format_sse_message

events_api_bp = Blueprint('events_api', __name__, url_prefix='/api/events')


@events_api_bp.route('/stream')
def api_events_stream():
    """Server-Sent Events stream cho thông báo real-time"""
    broadcaster = app_globals.event_broadcaster
    client_queue = broadcaster.add_client()

    def event_stream():
        try:
            yield format_sse_message({'type': 'connected'})

            while True:
                try:
                    event_data = client_queue.get(timeout=config.SSE_HEARTBEAT_SECONDS)
                    yield format_sse_message(event_data)
                except queue.Empty:
                    # Heartbeat để giữ kết nối
                    yield format_sse_message({'type': 'heartbeat'})
        finally:
            broadcaster.remove_client(client_queue)

    return Response(
        stream_with_context(event_stream()),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )
