from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from ..dependencies import image_store, receipt_store
from ..schemas import ReceiptUpdate

router = APIRouter()


@router.get("/receipts")
async def list_receipts() -> List[Dict[str, Any]]:
    return [record.to_dict() for record in await receipt_store.list_all()]


@router.get("/receipts/{receipt_id}")
async def get_receipt(receipt_id: str) -> Dict[str, Any]:
    record = await receipt_store.get(receipt_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return record.to_dict()


@router.patch("/receipts/{receipt_id}")
async def update_receipt(receipt_id: str, update: ReceiptUpdate) -> Dict[str, Any]:
    record = await receipt_store.update(receipt_id, status=update.status, fields=update.fields)
    if record is None:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return record.to_dict()


@router.delete("/receipts/{receipt_id}")
async def delete_receipt(receipt_id: str) -> Dict[str, Any]:
    deleted = await receipt_store.delete(receipt_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return {"id": receipt_id, "deleted": True}


@router.delete("/receipts")
async def clear_receipts() -> Dict[str, Any]:
    return {"deleted": await receipt_store.clear()}


@router.get("/images/{name}")
async def get_image(name: str) -> FileResponse:
    path = image_store.path_for(name)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(path)
