from __future__ import annotations

from typing import List, Optional

from .models import ExtractedRecord

REQUIRED_RECORD_FIELDS = ("id", "status", "created_at")


def missing_required_fields(record: Optional[ExtractedRecord]) -> List[str]:
    """Names of envelope fields that are absent or empty, in declaration order."""
    if record is None:
        return list(REQUIRED_RECORD_FIELDS)
    missing: List[str] = []
    for name in REQUIRED_RECORD_FIELDS:
        value = getattr(record, name, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


def validation_error(record: Optional[ExtractedRecord]) -> Optional[str]:
    missing = missing_required_fields(record)
    if not missing:
        return None
    return f"Extracted record is missing required fields: {', '.join(missing)}"
