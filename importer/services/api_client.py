"""HTTP adapter for importer API operations."""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..errors import APIError


class HTTPAPIClient:
    """
    HTTP client adapter for authenticated JSON APIs.

    Rejected requests raise APIError; transport failures propagate as
    httpx.RequestError so callers can tell the two apart.
    """

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        timeout: Optional[float] = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._headers = dict(headers or {})
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def open(self) -> None:
        if self._client is not None:
            return
        headers = dict(self._headers)
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")
        return self._client

    @staticmethod
    def raise_for_status(response: httpx.Response) -> httpx.Response:
        if response.status_code >= 400:
            try:
                error_detail = response.json()
            except ValueError:
                error_detail = response.text
            raise APIError(
                response.status_code,
                error_detail,
                method=response.request.method,
                url=str(response.request.url),
            )
        return response

    async def request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        response = await self.client.request(method, endpoint, **kwargs)
        return self.raise_for_status(response)

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        return await self.request("GET", endpoint, params=params)

    async def put(self, endpoint: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", endpoint, **kwargs)

    async def post(self, endpoint: str, json: Dict) -> httpx.Response:
        return await self.request("POST", endpoint, json=json)
