"""EventBus: thread-safe pub/sub between the game session and its listeners.

The session publishes world snapshots, incident and feedback events here;
the WebSocket bridge and the headless runner subscribe.  Keeping it in its
own module means listeners never need to import the session.
"""

from __future__ import annotations

import queue
import threading

SUBSCRIBER_QUEUE_SIZE = 100


class EventBus:
    """Fan-out of ``{"type": ..., "data": ...}`` messages to bounded queues."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[queue.Queue] = []

    def subscribe(self) -> queue.Queue:
        """Return a new queue that receives every message published from now on."""
        q: queue.Queue = queue.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event_type: str, data: dict | None = None) -> None:
        msg: dict = {"type": event_type}
        if data is not None:
            msg["data"] = data
        with self._lock:
            for q in self._subscribers:
                self._offer(q, msg)

    @staticmethod
    def _offer(q: queue.Queue, msg: dict) -> None:
        try:
            q.put_nowait(msg)
            return
        except queue.Full:
            pass
        # A slow listener loses its oldest snapshot, never the newest event
        try:
            q.get_nowait()
        except queue.Empty:
            pass
        try:
            q.put_nowait(msg)
        except queue.Full:
            pass
