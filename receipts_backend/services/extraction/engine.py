"""
Receipt extraction through OpenAI-compatible chat completion endpoints.

Gemini, OpenRouter and local servers (Ollama, llama.cpp, vLLM) all expose the
chat completions API, so a single adapter covers every provider; only the base
URL, the default model and a couple of headers differ.

Transport failures (connection errors, timeouts, 429/5xx) propagate to the
caller so they can be retried. Anything that goes wrong after a response was
received is reported as a record with ``status == "error"``.
"""

from __future__ import annotations

import base64
import json
import logging
import re
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Tuple

from openai import AsyncOpenAI

from ...errors import ProviderConfigurationError
from ..processing.events import EventLog
from ..processing.models import ExtractedRecord, ImageSource
from .schemas import BOUNDING_BOX_FIELD, parse_bounding_box

if TYPE_CHECKING:  # pragma: no cover
    from ...schemas import ExtractionSettings

logger = logging.getLogger(__name__)

PROVIDER_BASE_URLS: Dict[str, str] = {
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
    "openrouter": "https://openrouter.ai/api/v1",
    "local": "http://localhost:11434/v1",
}
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
EXTRACTION_TEMPERATURE = 0.1

# Envelope keys owned by the pipeline; a provider cannot overwrite them.
RESERVED_KEYS = frozenset({"id", "createdAt", "created_at", "status", "rawImage", "source_image_ref", "error"})

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class ExtractionAdapter(Protocol):
    async def extract(self, source: ImageSource) -> ExtractedRecord:
        ...


def strip_code_fences(content: str) -> str:
    text = content.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_extraction_payload(content: Optional[str]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Parse a model response into a field mapping.

    Returns:
        Tuple of (fields, error_message)
    """
    if not content or not content.strip():
        return None, "Empty response from LLM"
    try:
        data = json.loads(strip_code_fences(content))
    except json.JSONDecodeError as exc:
        return None, f"JSON parse error: {exc}"
    if not isinstance(data, dict):
        return None, "LLM response is not a JSON object"
    if not data:
        return None, "No data extracted from receipt"

    fields = {k: v for k, v in data.items() if k not in RESERVED_KEYS}
    if BOUNDING_BOX_FIELD in fields:
        fields[BOUNDING_BOX_FIELD] = parse_bounding_box(fields[BOUNDING_BOX_FIELD])
    return fields, None


def build_messages(settings: "ExtractionSettings", source: ImageSource) -> List[Dict[str, Any]]:
    encoded = base64.b64encode(source.data).decode("ascii")
    content_type = source.content_type or "image/jpeg"
    system_prompt = (
        f"{settings.system_prompt}\n\n"
        f"You MUST output valid JSON strictly adhering to this schema:\n{settings.output_schema}"
    )
    return [
        {"role": "system", "content": system_prompt},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "Extract data from this receipt."},
                {"type": "image_url", "image_url": {"url": f"data:{content_type};base64,{encoded}"}},
            ],
        },
    ]


class OpenAICompatibleExtractor:
    def __init__(
        self,
        settings: "ExtractionSettings",
        *,
        debug_log: Optional[EventLog] = None,
        client: Optional[Any] = None,
    ) -> None:
        self.settings = settings
        self.provider = settings.provider
        self.base_url = (settings.base_url or "").strip() or PROVIDER_BASE_URLS.get(self.provider, "")
        self.model = (settings.model or "").strip() or (DEFAULT_GEMINI_MODEL if self.provider == "gemini" else "")
        self._debug = debug_log if debug_log is not None else EventLog("extraction")
        self._client = client

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        api_key = (self.settings.api_key or "").strip()
        if self.provider in ("gemini", "openrouter") and not api_key:
            raise ProviderConfigurationError(f"API key missing for {self.provider}")
        if not self.model:
            raise ProviderConfigurationError(f"No model configured for {self.provider}")

        headers: Dict[str, str] = {}
        if self.provider == "openrouter":
            headers["HTTP-Referer"] = "http://localhost"
            headers["X-Title"] = "ReceiptAI"
        # Retries are owned by run_with_retry; the SDK must not add its own.
        self._client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key or "not-needed",
            max_retries=0,
            default_headers=headers or None,
        )
        return self._client

    async def extract(self, source: ImageSource) -> ExtractedRecord:
        self._debug.info(
            f"Starting extraction for: {source.filename}",
            {"fileSize": source.size, "fileType": source.content_type, "provider": self.provider},
        )
        client = self._get_client()
        messages = build_messages(self.settings, source)
        self._debug.info(
            "Sending request to LLM API...",
            {"baseUrl": self.base_url, "model": self.model, "promptLength": len(self.settings.system_prompt)},
        )

        response = await client.chat.completions.create(
            model=self.model,
            messages=messages,
            response_format={"type": "json_object"},
            temperature=EXTRACTION_TEMPERATURE,
        )

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        fields, error = parse_extraction_payload(content)
        if error:
            preview = (content or "")[:300]
            self._debug.error(f"Extraction failed for: {source.filename}", {"error": error, "rawContent": preview})
            return ExtractedRecord.failed(error)

        record = ExtractedRecord.new(fields=fields or {})
        self._debug.success(
            f"Extraction completed for: {source.filename}",
            {"id": record.id, "fieldCount": len(record.fields)},
        )
        return record


def create_extractor(settings: "ExtractionSettings", *, debug_log: Optional[EventLog] = None) -> OpenAICompatibleExtractor:
    return OpenAICompatibleExtractor(settings, debug_log=debug_log)
