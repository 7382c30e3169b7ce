from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter

from ..dependencies import debug_log, receipt_store, scheduler, settings, settings_store

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/status")
async def system_status() -> Dict[str, Any]:
    snapshot = scheduler.snapshot()
    extraction_settings = await settings_store.load()
    return {
        "active": snapshot["active"],
        "queue": {
            "total": snapshot["total"],
            "processed_count": snapshot["processed_count"],
            "counts": snapshot["counts"],
        },
        "last_updated": snapshot["last_updated"],
        "concurrency_limit": scheduler.concurrency_limit or extraction_settings.concurrent_api_calls,
        "receipts_count": await receipt_store.count(),
        "settings": {
            "extraction": extraction_settings.public_view(),
            "retry": {
                "max_retries": scheduler.retry_options.max_retries,
                "initial_delay_sec": scheduler.retry_options.initial_delay,
                "max_delay_sec": scheduler.retry_options.max_delay,
                "backoff_multiplier": scheduler.retry_options.backoff_multiplier,
            },
            "extraction_timeout_sec": settings.extraction_timeout,
            "storage": {
                "data_dir": str(settings.data_dir),
                "image_dir": str(settings.image_dir),
                "doc_store": str(settings.doc_store_path),
            },
        },
    }


@router.get("/debug/logs")
async def debug_logs() -> List[Dict[str, Any]]:
    return [entry.to_dict() for entry in debug_log.entries()]


@router.delete("/debug/logs")
async def clear_debug_logs() -> Dict[str, Any]:
    debug_log.clear()
    return {"cleared": True}
