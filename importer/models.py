"""
Models for importer module.

Immutable dataclasses; items change only through ``dataclasses.replace``.
"""
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Dict, Any, Tuple, Sequence

from .errors import NoRenditionError


class ImportStage(Enum):
    """Position of an import item in the transfer pipeline."""
    CHECKING = "checking"
    FETCHING_METADATA = "fetching_metadata"
    DOWNLOADING = "downloading"
    CREATING_RECORD = "creating_record"
    UPLOADING = "uploading"
    UPLOADING_THUMBNAIL = "uploading_thumbnail"
    POLLING = "polling"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_STAGES = frozenset({ImportStage.COMPLETE, ImportStage.ERROR})
RESUMABLE_STAGES = frozenset({ImportStage.POLLING})
TRANSFER_STAGES = frozenset({
    ImportStage.CHECKING,
    ImportStage.FETCHING_METADATA,
    ImportStage.DOWNLOADING,
    ImportStage.CREATING_RECORD,
    ImportStage.UPLOADING,
    ImportStage.UPLOADING_THUMBNAIL,
})


class StatusClass(Enum):
    """Classification of a destination processing status."""
    DONE = "done"
    ERROR = "error"
    IN_PROGRESS = "in_progress"


@dataclass(frozen=True)
class ImportConfig:
    """Immutable configuration for import operations."""
    max_title_length: int = 100
    poll_interval: float = 10.0
    done_statuses: Tuple[str, ...] = ("COMPLETE", "COMPLETED", "READY", "ENCODED")
    error_statuses: Tuple[str, ...] = ("FAILED", "ERROR")
    download_range: Tuple[float, float] = (15.0, 50.0)
    upload_range: Tuple[float, float] = (55.0, 90.0)
    max_file_size_mb: Optional[float] = None  # None = no limit
    thumbnail_max_width: int = 1080
    thumbnail_quality: int = 80
    storage_key: str = "vimeo_import_queue"

    def classify_status(self, status: Optional[str]) -> StatusClass:
        """Map a raw destination status onto done / error / in progress."""
        code = (status or "").strip().upper()
        if code in self.done_statuses:
            return StatusClass.DONE
        if code in self.error_statuses:
            return StatusClass.ERROR
        return StatusClass.IN_PROGRESS

    @staticmethod
    def map_progress(percent: float, span: Tuple[float, float]) -> float:
        """Map a 0-100 sub-task percentage onto a slice of the overall scale."""
        start, end = span
        percent = min(max(percent, 0.0), 100.0)
        return start + percent * (end - start) / 100.0


@dataclass(frozen=True)
class FetchConfig:
    """Immutable configuration for the paginated collection fetch."""
    per_page: int = 100
    request_delay: float = 0.5
    max_retries: int = 5
    initial_retry_delay: float = 2.0


@dataclass(frozen=True)
class ImportOptions:
    """Snapshot of user-chosen import parameters."""
    visibility: str = "private"
    language: str = ""
    auto_transcribe: bool = False
    tags: str = ""
    category_id: str = ""

    def tag_list(self) -> list:
        return [t.strip() for t in self.tags.split(",") if t.strip()]

    def to_record_fields(self, title: str, source_id: str, max_title_length: int = 100) -> Dict[str, Any]:
        """Build the create-record payload for the destination platform."""
        fields: Dict[str, Any] = {
            "title": (title or "")[:max_title_length],
            "visibility": self.visibility,
            "autoTranscribe": self.auto_transcribe,
            "customMetadata": {"vimeoId": source_id},
        }
        if self.language.strip():
            fields["language"] = self.language.strip()
        tags = self.tag_list()
        if tags:
            fields["tags"] = tags
        if self.category_id.strip():
            fields["categories"] = [self.category_id.strip()]
        return fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "visibility": self.visibility,
            "language": self.language,
            "autoTranscribe": self.auto_transcribe,
            "tags": self.tags,
            "categoryId": self.category_id,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ImportOptions":
        data = data or {}
        if not isinstance(data, dict):
            raise TypeError(f"options must be an object, got {type(data).__name__}")
        visibility = data.get("visibility")
        return cls(
            visibility=visibility if visibility in ("private", "public") else "private",
            language=data.get("language") or "",
            auto_transcribe=bool(data.get("autoTranscribe", False)),
            tags=data.get("tags") or "",
            category_id=data.get("categoryId") or "",
        )


@dataclass(frozen=True)
class Rendition:
    """One downloadable rendition of a source video."""
    link: str
    size: int = 0
    type: str = "video/mp4"
    public_name: str = ""
    rendition: str = ""
    quality: str = ""
    width: int = 0
    height: int = 0

    @property
    def is_source(self) -> bool:
        """Original upload; never distributed."""
        return self.public_name == "source" or self.rendition == "source"

    @property
    def extension(self) -> str:
        if "/" in self.type:
            return self.type.split("/", 1)[1]
        return "mp4"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Rendition":
        return cls(
            link=data.get("link") or "",
            size=int(data.get("size") or 0),
            type=data.get("type") or "video/mp4",
            public_name=data.get("public_name") or "",
            rendition=data.get("rendition") or "",
            quality=data.get("quality") or "",
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "link": self.link,
            "size": self.size,
            "type": self.type,
            "public_name": self.public_name,
            "rendition": self.rendition,
            "quality": self.quality,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class Thumbnail:
    """One size of the source video's picture."""
    link: str
    width: int = 0
    height: int = 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Thumbnail":
        return cls(
            link=data.get("link") or "",
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"link": self.link, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class SourceMetadata:
    """Immutable copy of the remote video metadata."""
    title: str
    description: str = ""
    duration: float = 0
    width: int = 0
    height: int = 0
    renditions: Tuple[Rendition, ...] = ()
    thumbnails: Tuple[Thumbnail, ...] = ()
    thumbnails_active: bool = False

    @property
    def has_thumbnail(self) -> bool:
        return self.thumbnails_active and len(self.thumbnails) > 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "SourceMetadata":
        """Parse a Vimeo ``/videos/{id}`` payload."""
        pictures = data.get("pictures") or {}
        return cls(
            title=data.get("name") or "",
            description=data.get("description") or "",
            duration=data.get("duration") or 0,
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
            renditions=tuple(Rendition.from_api(d) for d in data.get("download") or []),
            thumbnails=tuple(Thumbnail.from_api(s) for s in pictures.get("sizes") or []),
            thumbnails_active=bool(pictures.get("active", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.title,
            "description": self.description,
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
            "download": [r.to_dict() for r in self.renditions],
            "pictures": {
                "active": self.thumbnails_active,
                "sizes": [t.to_dict() for t in self.thumbnails],
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceMetadata":
        if not isinstance(data, dict):
            raise TypeError(f"vimeoData must be an object, got {type(data).__name__}")
        return cls.from_api(data)


def select_rendition(renditions: Sequence[Rendition]) -> Rendition:
    """
    Pick the largest rendition that is not the source upload.

    Ties keep the first encountered maximum.

    Raises:
        NoRenditionError: no renditions, or only source renditions
    """
    if not renditions:
        raise NoRenditionError("No download links available.")
    candidates = [r for r in renditions if not r.is_source]
    if not candidates:
        raise NoRenditionError("No suitable download rendition found.")
    return max(candidates, key=lambda r: r.size)


def select_thumbnail(thumbnails: Sequence[Thumbnail]) -> Optional[Thumbnail]:
    """Pick the widest thumbnail (first maximum wins)."""
    if not thumbnails:
        return None
    return max(thumbnails, key=lambda t: t.width)


def generate_item_id(source_id: str) -> str:
    return f"{int(time.time() * 1000)}-{source_id}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class ImportItem:
    """One requested transfer, persisted across restarts."""
    id: str
    source_id: str
    stage: ImportStage = ImportStage.CHECKING
    progress: float = 0
    status_text: str = "Starting..."
    source_metadata: Optional[SourceMetadata] = None
    destination_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error_message: Optional[str] = None
    options: ImportOptions = field(default_factory=ImportOptions)

    @classmethod
    def create(cls, source_id: str, options: Optional[ImportOptions] = None) -> "ImportItem":
        source_id = source_id.strip()
        return cls(
            id=generate_item_id(source_id),
            source_id=source_id,
            options=options or ImportOptions(),
        )

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def advance(
        self,
        stage: ImportStage,
        status_text: Optional[str] = None,
        progress: Optional[float] = None,
    ) -> "ImportItem":
        """Move to ``stage``; progress never goes backwards."""
        if self.is_terminal:
            raise ValueError(f"Item {self.id} already finished ({self.stage.value})")
        return replace(
            self,
            stage=stage,
            status_text=status_text if status_text is not None else self.status_text,
            progress=self.progress if progress is None else max(self.progress, progress),
        )

    def with_progress(self, progress: float, status_text: Optional[str] = None) -> "ImportItem":
        return replace(
            self,
            progress=max(self.progress, progress),
            status_text=status_text if status_text is not None else self.status_text,
        )

    def with_status(self, status_text: str) -> "ImportItem":
        return replace(self, status_text=status_text)

    def with_metadata(self, metadata: SourceMetadata) -> "ImportItem":
        if self.source_metadata is not None and self.source_metadata != metadata:
            raise ValueError(f"Item {self.id} already has source metadata")
        return replace(self, source_metadata=metadata)

    def with_destination(self, destination_id: str) -> "ImportItem":
        if self.destination_id is not None and self.destination_id != destination_id:
            raise ValueError(
                f"Item {self.id} already bound to destination {self.destination_id}"
            )
        return replace(self, destination_id=destination_id)

    def with_thumbnail(self, thumbnail_url: Optional[str]) -> "ImportItem":
        return replace(self, thumbnail_url=thumbnail_url)

    def fail(self, message: str, status_text: str = "Failed") -> "ImportItem":
        return replace(
            self,
            stage=ImportStage.ERROR,
            error_message=message,
            status_text=status_text,
        )

    def complete(self, status_text: str = "Import complete!") -> "ImportItem":
        return replace(
            self,
            stage=ImportStage.COMPLETE,
            progress=100,
            status_text=status_text,
            error_message=None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vimeoId": self.source_id,
            "stage": self.stage.value,
            "progress": self.progress,
            "statusText": self.status_text,
            "vimeoData": self.source_metadata.to_dict() if self.source_metadata else None,
            "igniteVideoId": self.destination_id,
            "thumbnailUrl": self.thumbnail_url,
            "errorMessage": self.error_message,
            "options": self.options.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportItem":
        metadata = data.get("vimeoData")
        return cls(
            id=str(data["id"]),
            source_id=str(data["vimeoId"]),
            stage=ImportStage(data.get("stage", ImportStage.ERROR.value)),
            progress=data.get("progress") or 0,
            status_text=data.get("statusText") or "",
            source_metadata=SourceMetadata.from_dict(metadata) if metadata else None,
            destination_id=data.get("igniteVideoId"),
            thumbnail_url=data.get("thumbnailUrl"),
            error_message=data.get("errorMessage"),
            options=ImportOptions.from_dict(data.get("options")),
        )
