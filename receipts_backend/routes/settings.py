from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from ..dependencies import settings_store
from ..schemas import ExtractionSettings

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
async def get_settings() -> Dict[str, Any]:
    return (await settings_store.load()).model_dump()


@router.put("")
async def put_settings(payload: ExtractionSettings) -> Dict[str, Any]:
    # Takes effect on the next run; an active run keeps the settings it started with.
    return (await settings_store.save(payload)).model_dump()


@router.post("/reset")
async def reset_settings() -> Dict[str, Any]:
    return (await settings_store.reset()).model_dump()
