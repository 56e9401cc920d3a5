"""
Source Service - Single Responsibility: read videos from the Vimeo API.
"""
from dataclasses import dataclass
import logging
from typing import Optional

import httpx

from ..models import SourceMetadata
from ..protocols import ProgressCallback
from .api_client import HTTPAPIClient

logger = logging.getLogger(__name__)

VIMEO_API_BASE = "https://api.vimeo.com"


@dataclass(frozen=True)
class DownloadedFile:
    """Binary payload held in memory."""
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


async def stream_download(
    client: httpx.AsyncClient,
    url: str,
    progress_callback: Optional[ProgressCallback] = None,
) -> DownloadedFile:
    """
    Stream ``url`` into memory.

    Progress is reported as integer percent, and only when the response
    declares its length.
    """
    async with client.stream("GET", url) as response:
        if response.status_code >= 400:
            await response.aread()
            HTTPAPIClient.raise_for_status(response)

        total = int(response.headers.get("content-length") or 0)
        received = 0
        last_percent = -1
        chunks = []
        async for chunk in response.aiter_bytes():
            chunks.append(chunk)
            received += len(chunk)
            if total and progress_callback:
                percent = min(100, round(received * 100 / total))
                if percent != last_percent:
                    last_percent = percent
                    progress_callback(percent)

        return DownloadedFile(
            content=b"".join(chunks),
            content_type=response.headers.get("content-type"),
        )


class VimeoClient:
    """
    Client for the source video host.

    Implements ISourceClient protocol.
    """

    def __init__(
        self,
        token: str,
        base_url: str = VIMEO_API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api = HTTPAPIClient(base_url, token=token, timeout=60, transport=transport)
        # Download links are pre-signed; never send the API token there.
        self._downloads = HTTPAPIClient(timeout=None, transport=transport)

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def open(self) -> None:
        await self._api.open()
        await self._downloads.open()

    async def aclose(self) -> None:
        await self._api.aclose()
        await self._downloads.aclose()

    async def get_metadata(self, video_id: str) -> SourceMetadata:
        """
        Fetch video metadata.

        Raises:
            APIError: 404 when the video does not exist, 401/403 when the
                token cannot read it
        """
        response = await self._api.get(f"/videos/{video_id}")
        data = response.json()
        metadata = SourceMetadata.from_api(data or {})
        logger.debug(
            "[source] %s: %r, %d renditions", video_id, metadata.title, len(metadata.renditions)
        )
        return metadata

    async def download(
        self,
        url: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> DownloadedFile:
        return await stream_download(self._downloads.client, url, progress_callback)
