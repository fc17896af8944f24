"""
Activity log — a bounded, thread-safe record of notable transitions.

The pipeline calls ``record`` after each major event (submission started,
project completed, per-room image failure, credential rejection). Entries are
kept newest first and only the last MAX_ENTRIES survive.
"""

import threading
import logging
from datetime import datetime
from typing import Callable, List

logger = logging.getLogger(__name__)

MAX_ENTRIES = 20


class ActivityLog:

    def __init__(self, max_entries: int = MAX_ENTRIES, clock: Callable[[], datetime] = datetime.now):
        self._lock = threading.Lock()
        self._entries: List[str] = []
        self._max_entries = max_entries
        self._clock = clock

    def record(self, message: str):
        """Add a timestamped entry. Never raises into the caller."""
        entry = f"[{self._clock().strftime('%H:%M:%S')}] {message}"
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self._max_entries:]
        logger.debug(f"Activity: {message}")

    def entries(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()
