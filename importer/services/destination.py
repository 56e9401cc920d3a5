"""
Destination Service - Single Responsibility: write videos to Ignite.

Wraps the Ignite Video Cloud REST API: duplicate lookup, record creation,
signed-URL upload, thumbnail upload and status reads.
"""
from dataclasses import dataclass
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..errors import ImporterError
from ..protocols import ProgressCallback
from .api_client import HTTPAPIClient
from .thumbnails import encode_thumbnail_async

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://app.ignitevideo.cloud/api"
UPLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ExistingRecord:
    """Destination record already tagged with a source id."""
    record_id: str
    title: Optional[str] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class CreatedRecord:
    """New destination record and where to send its binary."""
    record_id: str
    upload_target: str


async def _iter_chunks(
    content: bytes,
    progress_callback: Optional[ProgressCallback],
    chunk_size: int = UPLOAD_CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    total = len(content)
    sent = 0
    last_percent = -1
    for offset in range(0, total, chunk_size):
        chunk = content[offset:offset + chunk_size]
        yield chunk
        sent += len(chunk)
        if progress_callback and total:
            percent = round(sent * 100 / total)
            if percent != last_percent:
                last_percent = percent
                progress_callback(percent)


class IgniteClient:
    """
    Client for the destination video platform.

    Implements IDestinationClient protocol.
    """

    def __init__(
        self,
        token: str,
        api_base: str = DEFAULT_API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        thumbnail_max_width: int = 1080,
        thumbnail_quality: int = 80,
    ):
        self._api = HTTPAPIClient(api_base.rstrip("/"), token=token, timeout=60, transport=transport)
        # Signed upload URLs carry their own authorization.
        self._uploads = HTTPAPIClient(timeout=None, transport=transport)
        self._thumbnail_max_width = thumbnail_max_width
        self._thumbnail_quality = thumbnail_quality

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def open(self) -> None:
        await self._api.open()
        await self._uploads.open()

    async def aclose(self) -> None:
        await self._api.aclose()
        await self._uploads.aclose()

    async def find_by_source_tag(self, source_id: str) -> Optional[ExistingRecord]:
        """Return the record whose ``customMetadata.vimeoId`` equals ``source_id``."""
        response = await self._api.get(
            "/videos",
            params={
                "where[customMetadata.vimeoId][equals]": source_id,
                "limit": 1,
            },
        )
        docs = (response.json() or {}).get("docs") or []
        if not docs:
            return None
        doc = docs[0]
        return ExistingRecord(
            record_id=str(doc.get("id")),
            title=doc.get("title"),
            status=doc.get("status"),
        )

    async def create_record(self, fields: Dict[str, Any]) -> CreatedRecord:
        response = await self._api.put("/videos/upload", json=fields)
        data = response.json() or {}
        if not isinstance(data, dict) or not data.get("videoId") or not data.get("signedUrl"):
            raise ImporterError("Unexpected create response from Ignite: missing videoId or signedUrl")
        record = CreatedRecord(record_id=str(data["videoId"]), upload_target=data["signedUrl"])
        logger.info("[destination] Created record %s", record.record_id)
        return record

    async def upload_binary(
        self,
        target: str,
        content: bytes,
        content_type: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """PUT the binary to a signed URL, reporting integer percent."""
        await self._uploads.put(
            target,
            content=_iter_chunks(content, progress_callback),
            headers={
                "Content-Type": content_type,
                "Content-Length": str(len(content)),
            },
        )

    async def upload_thumbnail(self, record_id: str, content: bytes) -> Optional[str]:
        """Convert to JPEG and upload as the record's custom thumbnail."""
        jpeg = await encode_thumbnail_async(
            content, self._thumbnail_max_width, self._thumbnail_quality
        )
        response = await self._api.put(
            f"/videos/{record_id}/thumbnail",
            files={"file": ("thumbnail.jpg", jpeg, "image/jpeg")},
        )
        data = response.json() or {}
        return data.get("customThumbnailUrl") or data.get("thumbnailUrl")

    async def get_status(self, record_id: str) -> str:
        response = await self._api.get(f"/videos/{record_id}")
        data = response.json() or {}
        return str(data.get("status") or "")
