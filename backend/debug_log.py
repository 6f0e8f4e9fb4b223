import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Dict, List, Optional

MAX_RECORDS = 100


class RingBufferHandler(logging.Handler):
    """Keeps the most recent log records in memory for the admin log view."""

    def __init__(self, capacity: int = MAX_RECORDS, level: int = logging.INFO):
        super().__init__(level=level)
        self._records = deque(maxlen=capacity)
        self._buffer_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            item = {
                "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                "level": record.levelname.lower(),
                "category": record.name,
                "message": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                item["error"] = repr(record.exc_info[1])
        except Exception:
            self.handleError(record)
            return
        with self._buffer_lock:
            self._records.append(item)

    def records(self, level: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, str]]:
        with self._buffer_lock:
            items = list(self._records)
        if level:
            items = [item for item in items if item["level"] == level.lower()]
        items.reverse()
        if limit is not None:
            items = items[:limit]
        return items

    def clear(self) -> None:
        with self._buffer_lock:
            self._records.clear()


ring_buffer = RingBufferHandler()


def install(logger: Optional[logging.Logger] = None) -> RingBufferHandler:
    target = logger or logging.getLogger()
    if ring_buffer not in target.handlers:
        target.addHandler(ring_buffer)
    return ring_buffer
