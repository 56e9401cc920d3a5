"""Exceptions raised by the importer and normalisation of their messages."""
import json
from typing import Any, Optional

import httpx


class ImporterError(RuntimeError):
    """Base class for importer failures."""


class APIError(ImporterError):
    """Request reached the server and was rejected with a status code."""

    def __init__(
        self,
        status_code: int,
        detail: Any = None,
        method: str = "GET",
        url: str = "",
    ):
        self.status_code = status_code
        self.detail = detail
        self.method = method
        self.url = url
        super().__init__(f"API error {status_code} on {method} {url}: {detail}")

    @property
    def message(self) -> str:
        """Best human-readable message from the error body."""
        detail = self.detail
        if isinstance(detail, dict):
            msg = detail.get("message") or detail.get("error")
            if msg:
                return str(msg)
            return json.dumps(detail)
        if detail:
            return str(detail)
        return "Request failed"


class DuplicateImportError(ImporterError):
    """The destination already holds a record for this source video."""

    def __init__(self, record_id: str, title: Optional[str] = None):
        self.record_id = record_id
        self.title = title
        super().__init__(f'Already imported (ID: {record_id}, Title: "{title}")')


class NoRenditionError(ImporterError):
    """The source video offers no rendition that may be transferred."""


class FileTooLargeError(ImporterError):
    """Selected rendition exceeds the configured size limit."""


class RateLimitExceededError(ImporterError):
    """Quota rejections continued past the retry ceiling."""


def describe_error(error: BaseException) -> str:
    """
    Turn any exception into the message shown for a failed item.

    Keeps three cases apart:
    - rejected with a status: "<status>: <message>"
    - no response received: "No response from server"
    - client-side failure: the exception text
    """
    if isinstance(error, APIError):
        return f"{error.status_code}: {error.message}"
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        try:
            detail = response.json()
        except ValueError:
            detail = response.text
        return describe_error(APIError(response.status_code, detail))
    if isinstance(error, httpx.RequestError):
        return "No response from server"
    return str(error) or "Unknown error"
