from __future__ import annotations

from .events import EventLog, LogEntry
from .models import ExtractedRecord, ImageSource, QueueItem
from .queue import ProcessingQueue
from .validation import missing_required_fields, validation_error

__all__ = [
    "EventLog",
    "LogEntry",
    "ExtractedRecord",
    "ImageSource",
    "QueueItem",
    "ProcessingQueue",
    "missing_required_fields",
    "validation_error",
]
