from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional
from uuid import uuid4

ItemStatus = Literal["pending", "processing", "completed", "error"]
RecordStatus = Literal["draft", "approved", "rejected", "error"]


def utc_timestamp() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class ImageSource:
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class QueueItem:
    id: str
    source: ImageSource
    status: ItemStatus = "pending"
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "file": self.source.filename,
            "content_type": self.source.content_type,
            "size": self.source.size,
            "status": self.status,
            "error": self.error,
        }


@dataclass
class ExtractedRecord:
    """
    Structured output of one extraction.

    ``id``, ``status`` and ``created_at`` form the envelope every stored record
    must carry; ``fields`` holds whatever the configured output schema asked the
    provider for (merchant, totals, line items, bounding box, ...).
    """

    id: str
    created_at: str
    status: RecordStatus
    source_image_ref: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def new(cls, *, status: RecordStatus = "draft", **kwargs: Any) -> "ExtractedRecord":
        return cls(id=str(uuid4()), created_at=utc_timestamp(), status=status, **kwargs)

    @classmethod
    def failed(cls, message: str, *, source_image_ref: Optional[str] = None) -> "ExtractedRecord":
        return cls.new(status="error", error=message, source_image_ref=source_image_ref)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "status": self.status,
            "source_image_ref": self.source_image_ref,
            "error": self.error,
            "fields": dict(self.fields),
        }
