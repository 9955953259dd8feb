"""
Error Log

In-memory record of recent scraper failures so an operator can see what went
wrong in a run. Holds the newest 100 entries, newest first, and also forwards
every entry to the standard logger.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

MAX_ENTRIES = 100
MAX_MESSAGE_LENGTH = 1000


class ErrorSink(Protocol):
    def record(self, source: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        ...


class ErrorLog:
    def __init__(self, max_entries: int = MAX_ENTRIES):
        self._entries = deque(maxlen=max_entries)

    def record(self, source: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Store one failure.

        Args:
            source: Phase or module that failed (e.g. "search", "process")
            message: Error message, truncated to 1000 characters
            details: Extra context such as the file number or date chunk
        """
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source": source,
            "message": str(message)[:MAX_MESSAGE_LENGTH],
            "details": dict(details or {}),
        }
        self._entries.appendleft(entry)
        logger.error(f"[{source}] {entry['message']} {entry['details'] or ''}".rstrip())

    def entries(self) -> List[Dict[str, Any]]:
        """Copy of the stored entries, newest first"""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
