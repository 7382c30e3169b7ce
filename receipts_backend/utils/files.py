from __future__ import annotations

import mimetypes
from typing import Optional


def safe_filename(name: str) -> str:
    cleaned = "".join(c for c in name if c.isalnum() or c in (".", "_", "-", " "))
    cleaned = cleaned.strip()
    return cleaned[:255] or "upload.bin"


def guess_content_type(filename: str, declared: Optional[str] = None) -> str:
    declared = (declared or "").strip().lower()
    if declared and declared != "application/octet-stream":
        return declared
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"
