"""
In-process publish/subscribe for payroll batch progress.

The orchestrator publishes one event per processed employee plus a final
event; status stream subscribers each get their own queue. Nothing is kept
per session beyond its live subscribers: a late subscriber reads the current
state from the database first.
"""

import logging
import queue
import threading
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "error")


class BatchEventBus:
    def __init__(self, max_queue_size: int = 1000):
        self._subscribers: Dict[str, List[queue.Queue]] = {}
        self._lock = threading.Lock()
        self._max_queue_size = max_queue_size

    def subscribe(self, session_id: str) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=self._max_queue_size)
        with self._lock:
            self._subscribers.setdefault(session_id, []).append(q)
        return q

    def unsubscribe(self, session_id: str, q: queue.Queue) -> None:
        with self._lock:
            subscribers = self._subscribers.get(session_id, [])
            if q in subscribers:
                subscribers.remove(q)
            if not subscribers:
                self._subscribers.pop(session_id, None)

    def publish(self, session_id: str, event: Dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(session_id, []))
        for q in subscribers:
            try:
                q.put_nowait(event)
            except queue.Full:
                logger.warning(f"Dropping batch event for slow subscriber on session {session_id}")

    def subscriber_count(self, session_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(session_id, []))


def is_terminal(event: Optional[Dict[str, Any]]) -> bool:
    return bool(event) and event.get("status") in TERMINAL_STATUSES
