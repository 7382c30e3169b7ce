from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, File, HTTPException, UploadFile

from ..dependencies import scheduler
from ..schemas import QueueSnapshot
from ..services.uploads import read_uploads

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("", response_model=QueueSnapshot)
async def queue_snapshot() -> Dict[str, Any]:
    return scheduler.snapshot()


@router.post("")
async def enqueue(
    files: Optional[List[UploadFile]] = File(None),
    file: Optional[UploadFile] = File(None),
) -> Dict[str, Any]:
    uploads: List[UploadFile] = []
    if files:
        uploads.extend(files)
    if file:
        uploads.append(file)
    sources = await read_uploads(uploads)
    items = scheduler.enqueue(sources)
    return {
        "queued_count": len(items),
        "items": [item.to_dict() for item in items],
        "active": scheduler.active,
    }


@router.post("/start")
async def start_processing() -> Dict[str, Any]:
    task = scheduler.start_run()
    return {"started": task is not None, "active": scheduler.active or task is not None}


@router.delete("/{item_id}")
async def remove_item(item_id: str) -> Dict[str, Any]:
    return {"id": item_id, "removed": scheduler.remove(item_id)}


@router.delete("")
async def clear_queue() -> Dict[str, Any]:
    if not scheduler.clear():
        raise HTTPException(status_code=409, detail="Queue cannot be cleared while processing is running")
    return {"cleared": True}


@router.get("/logs")
async def queue_logs() -> List[Dict[str, Any]]:
    return [entry.to_dict() for entry in scheduler.log.entries()]
