"""In-process event logs exposed to observers through snapshots."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

logger = logging.getLogger(__name__)

LogLevel = Literal["info", "warn", "error", "success"]

_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: float
    level: LogLevel
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "level": self.level,
            "message": self.message,
            "details": self.details,
        }


class EventLog:
    """Append-only log with an explicit clear; every entry is mirrored to ``logging``."""

    def __init__(self, name: str, *, max_entries: Optional[int] = None) -> None:
        self._logger = logger.getChild(name)
        self._entries: List[LogEntry] = []
        self._max_entries = max_entries

    def add(self, level: LogLevel, message: str, details: Optional[Dict[str, Any]] = None) -> LogEntry:
        entry = LogEntry(timestamp=time.time(), level=level, message=message, details=details)
        self._entries.append(entry)
        if self._max_entries is not None and len(self._entries) > self._max_entries:
            del self._entries[: len(self._entries) - self._max_entries]
        if details:
            self._logger.log(_LEVELS.get(level, logging.INFO), "%s %s", message, details)
        else:
            self._logger.log(_LEVELS.get(level, logging.INFO), "%s", message)
        return entry

    def info(self, message: str, details: Optional[Dict[str, Any]] = None) -> LogEntry:
        return self.add("info", message, details)

    def success(self, message: str, details: Optional[Dict[str, Any]] = None) -> LogEntry:
        return self.add("success", message, details)

    def warn(self, message: str, details: Optional[Dict[str, Any]] = None) -> LogEntry:
        return self.add("warn", message, details)

    def error(self, message: str, details: Optional[Dict[str, Any]] = None) -> LogEntry:
        return self.add("error", message, details)

    def clear(self) -> None:
        self._entries = []

    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def lines(self) -> List[str]:
        return [entry.message for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)
