"""
Receipt extraction backends.

This package provides:
- The default receipt output schema and prompt
- Bounding-box validation for provider responses
- An OpenAI-compatible extraction adapter (Gemini, OpenRouter, local servers)
"""

from .engine import (
    ExtractionAdapter,
    OpenAICompatibleExtractor,
    build_messages,
    create_extractor,
    parse_extraction_payload,
)
from .schemas import DEFAULT_OUTPUT_SCHEMA, DEFAULT_SYSTEM_PROMPT, build_output_schema, parse_bounding_box

__all__ = [
    "ExtractionAdapter",
    "OpenAICompatibleExtractor",
    "build_messages",
    "create_extractor",
    "parse_extraction_payload",
    "DEFAULT_OUTPUT_SCHEMA",
    "DEFAULT_SYSTEM_PROMPT",
    "build_output_schema",
    "parse_bounding_box",
]
