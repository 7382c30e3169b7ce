from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .services.extraction.schemas import DEFAULT_OUTPUT_SCHEMA, DEFAULT_SYSTEM_PROMPT

LLMProvider = Literal["gemini", "openrouter", "local"]
ImageStorageProvider = Literal["imgbb", "cloudinary", "local"]


class ExtractionSettings(BaseModel):
    provider: LLMProvider = Field(default="gemini")
    api_key: str = Field(default="")
    base_url: str = Field(default="")
    model: str = Field(default="gemini-2.5-flash")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)
    output_schema: str = Field(default=DEFAULT_OUTPUT_SCHEMA)
    image_storage: ImageStorageProvider = Field(default="local")
    imgbb_api_key: str = Field(default="")
    cloudinary_cloud_name: str = Field(default="")
    cloudinary_upload_preset: str = Field(default="")
    concurrent_api_calls: int = Field(10, ge=1, le=50)

    def public_view(self) -> Dict[str, Any]:
        data = self.model_dump()
        for key in ("api_key", "imgbb_api_key"):
            data[key] = bool(data[key])
        return data


class QueueItemView(BaseModel):
    id: str
    file: str
    content_type: str
    size: int
    status: str
    error: Optional[str] = Field(default=None)


class QueueSnapshot(BaseModel):
    items: List[QueueItemView] = Field(default_factory=list)
    active: bool
    logs: List[str] = Field(default_factory=list)
    processed_count: int
    total: int
    counts: Dict[str, int] = Field(default_factory=dict)
    last_updated: float


class ReceiptUpdate(BaseModel):
    status: Optional[Literal["draft", "approved", "rejected"]] = Field(default=None)
    fields: Optional[Dict[str, Any]] = Field(default=None)
