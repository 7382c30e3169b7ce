from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import AppSettings, load_settings
from .persistence import ReceiptStore, SettingsStore
from .schemas import ExtractionSettings
from .services.images import ImageStore
from .services.processing.events import EventLog
from .services.processing.queue import ProcessingQueue
from .services.processing.scheduler import BatchScheduler
from .services.retry import RetryOptions


def default_extraction_settings(app_settings: AppSettings) -> ExtractionSettings:
    values = {
        "api_key": app_settings.llm_api_key,
        "base_url": app_settings.llm_base_url,
        "concurrent_api_calls": min(50, app_settings.concurrent_api_calls),
    }
    if app_settings.llm_provider in ("gemini", "openrouter", "local"):
        values["provider"] = app_settings.llm_provider
    if app_settings.llm_model:
        values["model"] = app_settings.llm_model
    return ExtractionSettings(**values)


settings = load_settings()
receipt_store = ReceiptStore(settings.doc_store_path)
settings_store = SettingsStore(receipt_store, default_extraction_settings(settings))
image_store = ImageStore(settings.image_dir)
processing_queue = ProcessingQueue()
debug_log = EventLog("debug", max_entries=2000)
scheduler = BatchScheduler(
    processing_queue,
    receipt_store,
    settings_store.load,
    image_store=image_store,
    retry_options=RetryOptions(
        max_retries=settings.retry_max_retries,
        initial_delay=settings.retry_initial_delay,
        max_delay=settings.retry_max_delay,
        backoff_multiplier=settings.retry_backoff_multiplier,
    ),
    extraction_timeout=settings.extraction_timeout,
    debug_log=debug_log,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await receipt_store.init()
    yield
    await scheduler.shutdown()
