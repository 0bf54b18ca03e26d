"""
Append-only processing log passed into an extraction job.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple


class ProcessingLog:
    """
    Timestamped, append-only log of one job's progress.

    Every entry is also forwarded to a standard logger so the same lines
    show up in server logs.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._entries: List[str] = []
        self._logger = logger or logging.getLogger(__name__)

    def append(self, message: str, level: int = logging.INFO) -> str:
        entry = f"[{datetime.now().strftime('%H:%M:%S')}] {message}"
        self._entries.append(entry)
        self._logger.log(level, message)
        return entry

    def warning(self, message: str) -> str:
        return self.append(message, logging.WARNING)

    def error(self, message: str) -> str:
        return self.append(message, logging.ERROR)

    def entries(self) -> Tuple[str, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
