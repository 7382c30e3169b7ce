from __future__ import annotations

from typing import List, Sequence

from fastapi import HTTPException, UploadFile

from ..utils.files import guess_content_type, safe_filename
from .processing.models import ImageSource


async def read_upload(file: UploadFile) -> ImageSource:
    display_name = safe_filename(file.filename or "upload.bin")
    content = await file.read()
    await file.close()
    if not content:
        raise HTTPException(status_code=400, detail=f"Uploaded file '{display_name}' is empty")
    content_type = guess_content_type(display_name, file.content_type)
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail=f"Uploaded file '{display_name}' is not an image ({content_type})")
    return ImageSource(filename=display_name, content_type=content_type, data=content)


async def read_uploads(files: Sequence[UploadFile]) -> List[ImageSource]:
    uploads = [f for f in files if f is not None]
    if not uploads:
        raise HTTPException(status_code=400, detail="No files uploaded")
    return [await read_upload(upload) for upload in uploads]
