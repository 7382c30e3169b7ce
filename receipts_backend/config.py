from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class AppSettings:
    data_dir: Path
    image_dir: Path
    doc_store_path: Path
    frontend_origin: str
    extraction_timeout: Optional[float]
    retry_max_retries: int
    retry_initial_delay: float
    retry_max_delay: float
    retry_backoff_multiplier: float
    llm_provider: str
    llm_api_key: str
    llm_base_url: str
    llm_model: str
    concurrent_api_calls: int


def _int_env(name: str, default: str) -> int:
    return int(os.environ.get(name, default) or default)


def _float_env(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw or default)
    except (TypeError, ValueError):
        return float(default)


def _str_env(name: str, default: str = "") -> str:
    return (os.environ.get(name, default) or default).strip()


def load_settings() -> AppSettings:
    data_dir = Path(os.environ.get("DATA_DIR", "/app_data/receipts"))
    image_dir = Path(os.environ.get("IMAGE_DIR") or (data_dir / "images"))
    doc_store_path = Path(os.environ.get("DOC_STORE_PATH") or (data_dir / "receipts.db"))

    data_dir.mkdir(parents=True, exist_ok=True)
    image_dir.mkdir(parents=True, exist_ok=True)

    # 0 disables the per-attempt timeout
    extraction_timeout = _float_env("EXTRACTION_TIMEOUT", "120")

    return AppSettings(
        data_dir=data_dir,
        image_dir=image_dir,
        doc_store_path=doc_store_path,
        frontend_origin=_str_env("FRONTEND_ORIGIN", f"http://localhost:{os.environ.get('FRONTEND_PORT', '5173')}"),
        extraction_timeout=extraction_timeout if extraction_timeout > 0 else None,
        retry_max_retries=max(0, _int_env("RETRY_MAX_RETRIES", "3")),
        retry_initial_delay=max(0.0, _float_env("RETRY_INITIAL_DELAY", "1.0")),
        retry_max_delay=max(0.0, _float_env("RETRY_MAX_DELAY", "10.0")),
        retry_backoff_multiplier=max(1.0, _float_env("RETRY_BACKOFF_MULTIPLIER", "2.0")),
        llm_provider=_str_env("LLM_PROVIDER", "gemini").lower(),
        llm_api_key=_str_env("LLM_API_KEY"),
        llm_base_url=_str_env("LLM_BASE_URL").rstrip("/"),
        llm_model=_str_env("LLM_MODEL"),
        concurrent_api_calls=max(1, _int_env("CONCURRENT_API_CALLS", "10")),
    )
