"""
Protocols (Interfaces) for Dependency Inversion.

Small, focused interfaces for the collaborators of the orchestrator.
"""
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from .models import SourceMetadata

ProgressCallback = Callable[[int], None]


@runtime_checkable
class ISourceClient(Protocol):
    """Interface for the video host the import reads from."""

    async def get_metadata(self, video_id: str) -> SourceMetadata:
        """Fetch full metadata for a video."""
        ...

    async def download(self, url: str, progress_callback: Optional[ProgressCallback] = None) -> Any:
        """Download a binary into memory (returns DownloadedFile)."""
        ...


@runtime_checkable
class IDestinationClient(Protocol):
    """Interface for the video platform the import writes to."""

    async def find_by_source_tag(self, source_id: str) -> Optional[Any]:
        """Return the existing record tagged with ``source_id``, if any."""
        ...

    async def create_record(self, fields: Dict[str, Any]) -> Any:
        """Create a record; returns CreatedRecord."""
        ...

    async def upload_binary(
        self,
        target: str,
        content: bytes,
        content_type: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """Upload the video binary to an upload target."""
        ...

    async def upload_thumbnail(self, record_id: str, content: bytes) -> Optional[str]:
        """Upload a thumbnail image; returns its public URL."""
        ...

    async def get_status(self, record_id: str) -> str:
        """Raw processing status of a record."""
        ...


@runtime_checkable
class IPersistenceStore(Protocol):
    """Synchronous key-value store, last write wins."""

    def load(self, key: str) -> Optional[str]:
        ...

    def save(self, key: str, value: str) -> None:
        ...
