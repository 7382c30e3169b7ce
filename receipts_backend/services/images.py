from __future__ import annotations

import hashlib
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import httpx

from ..errors import ImageStorageError
from ..utils.files import safe_filename
from .processing.events import EventLog
from .processing.models import ImageSource

if TYPE_CHECKING:  # pragma: no cover
    from ..schemas import ExtractionSettings

logger = logging.getLogger(__name__)

IMGBB_UPLOAD_URL = "https://api.imgbb.com/1/upload"
CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"


class ImageStore:
    """Keeps a reference to every processed image: cloud URL, or a local copy."""

    def __init__(self, image_dir: Path, *, url_prefix: str = "/images", timeout: float = 30.0) -> None:
        self.image_dir = Path(image_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self._timeout = timeout

    def path_for(self, name: str) -> Path:
        return self.image_dir / safe_filename(name)

    async def store(
        self,
        source: ImageSource,
        settings: "ExtractionSettings",
        *,
        log: Optional[EventLog] = None,
    ) -> str:
        provider = settings.image_storage
        if provider in ("imgbb", "cloudinary"):
            try:
                if provider == "imgbb":
                    url = await self._upload_imgbb(source, settings)
                else:
                    url = await self._upload_cloudinary(source, settings)
                if log is not None:
                    log.success(f"{provider} upload successful", {"url": url})
                return url
            except (httpx.HTTPError, ImageStorageError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Cloud upload to %s failed for %s: %s", provider, source.filename, exc)
                if log is not None:
                    log.warn("Cloud upload failed, storing image locally", {"error": str(exc)})
        return self.store_local(source)

    def store_local(self, source: ImageSource) -> str:
        digest = hashlib.sha256(source.data).hexdigest()
        suffix = Path(source.filename).suffix.lower()
        if not suffix:
            suffix = mimetypes.guess_extension(source.content_type or "") or ".bin"
        name = f"{digest}{suffix}"
        dest = self.image_dir / name
        try:
            self.image_dir.mkdir(parents=True, exist_ok=True)
            if not dest.exists():
                dest.write_bytes(source.data)
        except OSError as exc:
            raise ImageStorageError(f"Could not store image '{source.filename}': {exc}") from exc
        return f"{self.url_prefix}/{name}"

    async def _upload_imgbb(self, source: ImageSource, settings: "ExtractionSettings") -> str:
        api_key = (settings.imgbb_api_key or "").strip()
        if not api_key:
            raise ImageStorageError("ImgBB API key not configured")
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                IMGBB_UPLOAD_URL,
                params={"key": api_key},
                files={"image": (source.filename, source.data, source.content_type)},
            )
            response.raise_for_status()
            return response.json()["data"]["url"]

    async def _upload_cloudinary(self, source: ImageSource, settings: "ExtractionSettings") -> str:
        cloud_name = (settings.cloudinary_cloud_name or "").strip()
        preset = (settings.cloudinary_upload_preset or "").strip()
        if not cloud_name or not preset:
            raise ImageStorageError("Cloudinary credentials not configured")
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                CLOUDINARY_UPLOAD_URL.format(cloud_name=cloud_name),
                data={"upload_preset": preset},
                files={"file": (source.filename, source.data, source.content_type)},
            )
            response.raise_for_status()
            return response.json()["secure_url"]
