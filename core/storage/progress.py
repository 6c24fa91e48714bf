"""Observable progress stream for uploads."""
from __future__ import annotations

import logging
import queue
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

STATE_PROGRESS = "progress"
STATE_COMPLETED = "completed"
STATE_FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    upload_id: str
    percentage: float
    state: str = STATE_PROGRESS
    message: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def is_terminal(self) -> bool:
        return self.state in (STATE_COMPLETED, STATE_FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ProgressStream:
    """Fan-out of progress events to queue subscribers and listener callbacks.

    A listener that raises is logged and dropped so one observer cannot break
    an upload or starve the others.
    """

    def __init__(self, maxsize: int = 50) -> None:
        self._maxsize = maxsize
        self._subscribers: List[queue.Queue] = []
        self._listeners: List[Callable[[ProgressEvent], None]] = []
        self._lock = threading.Lock()

    def subscribe(self) -> queue.Queue:
        subscriber: queue.Queue = queue.Queue(maxsize=self._maxsize)
        with self._lock:
            self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: queue.Queue) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def add_listener(self, listener: Callable[[ProgressEvent], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[ProgressEvent], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
            listeners = list(self._listeners)

        for subscriber in subscribers:
            try:
                subscriber.put_nowait(event)
            except queue.Full:
                logger.warning("[Upload] Subscriber queue full, dropping subscriber")
                self.unsubscribe(subscriber)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("[Upload] Progress listener failed, removing it")
                self.remove_listener(listener)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers) + len(self._listeners)


class ProgressTracker:
    """Per-upload guard producing a well-formed progress sequence.

    Percentages never decrease, intermediate values stop short of 100, and
    nothing is emitted once the upload completed or failed.
    """

    def __init__(
        self,
        upload_id: str,
        stream: ProgressStream,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.upload_id = upload_id
        self._stream = stream
        self._callback = on_progress
        self._last = 0.0
        self._started = False
        self._finished = False
        self._lock = threading.Lock()

    def _notify(self, event: ProgressEvent, *, percentage_changed: bool) -> None:
        self._stream.publish(event)
        if self._callback is not None and percentage_changed:
            try:
                self._callback(event.percentage)
            except Exception:
                logger.exception("[Upload] on_progress callback failed for %s", self.upload_id)
                self._callback = None

    def report(self, percentage: float) -> None:
        with self._lock:
            if self._finished:
                return
            value = min(99.0, max(0.0, float(percentage)))
            if self._started and value <= self._last:
                return
            self._started = True
            self._last = value
        self._notify(ProgressEvent(self.upload_id, value), percentage_changed=True)

    def complete(self) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
            self._last = 100.0
        self._notify(ProgressEvent(self.upload_id, 100.0, STATE_COMPLETED), percentage_changed=True)

    def fail(self, message: str) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
            last = self._last
        self._notify(ProgressEvent(self.upload_id, last, STATE_FAILED, message), percentage_changed=False)
