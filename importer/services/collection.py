"""
Collection index - enumerate every video of a Vimeo library.

Walks the paginated ``/videos`` listing through RateLimitedRequester and
derives a flat video list plus a folder map. Grouping by folder is a view
computed from those two results afterwards.
"""
from dataclasses import dataclass, field, replace
import logging
import math
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import describe_error
from ..models import FetchConfig
from .rate_limit import RateLimitedRequester
from .source import VIMEO_API_BASE

logger = logging.getLogger(__name__)

_VIDEO_ID_RE = re.compile(r"/videos/(\d+)")
_FOLDER_ID_RE = re.compile(r"/projects/(\d+)")


@dataclass(frozen=True)
class RemoteVideo:
    """One video of the remote library."""
    video_id: str
    title: str
    folder_id: Optional[str] = None
    folder_name: Optional[str] = None
    folder_path: Optional[str] = None
    file_size: Optional[int] = None  # bytes of largest non-source download


@dataclass(frozen=True)
class FolderRecord:
    """Folder with its ancestor-qualified path ("Root/Parent/Child")."""
    folder_id: str
    name: str
    path: str


@dataclass(frozen=True)
class FetchProgress:
    """Running counters of a collection fetch."""
    status: str = "idle"  # idle, fetching, complete, error
    current_page: int = 0
    total_pages: int = 0
    total_videos: int = 0
    error_message: Optional[str] = None


@dataclass(frozen=True)
class CollectionIndex:
    """Result of a complete enumeration."""
    videos: Tuple[RemoteVideo, ...] = ()
    folders: Dict[str, FolderRecord] = field(default_factory=dict)


def extract_video_id(uri: str) -> str:
    """"/videos/123456789" -> "123456789" (uri unchanged if no match)."""
    match = _VIDEO_ID_RE.search(uri or "")
    return match.group(1) if match else uri


def extract_folder_id(uri: str) -> str:
    """"/users/1/projects/456" -> "456" (uri unchanged if no match)."""
    match = _FOLDER_ID_RE.search(uri or "")
    return match.group(1) if match else uri


def build_folder_path(ancestors: Sequence[Dict[str, Any]], name: str) -> str:
    """
    Join the ancestor chain and the folder's own name.

    ``ancestors`` is ordered immediate parent first, so it is reversed to
    start at the root.
    """
    parts = [a.get("name", "") for a in reversed(list(ancestors or []))]
    parts.append(name)
    return "/".join(parts)


def largest_download_size(downloads: Sequence[Dict[str, Any]]) -> Optional[int]:
    """Size of the largest download that is not the source file."""
    sizes = [
        d.get("size") or 0
        for d in downloads or []
        if d.get("rendition") != "source" and d.get("public_name") != "source"
    ]
    if not sizes:
        return None
    return max(sizes)


def parse_video(raw: Dict[str, Any]) -> Tuple[RemoteVideo, Optional[FolderRecord]]:
    """Build the RemoteVideo (and its folder, if any) from a listing entry."""
    folder = None
    parent = raw.get("parent_folder")
    if parent:
        folder_id = extract_folder_id(parent.get("uri", ""))
        folder_name = parent.get("name") or ""
        ancestors = (
            ((parent.get("metadata") or {}).get("connections") or {}).get("ancestor_path")
            or []
        )
        folder = FolderRecord(
            folder_id=folder_id,
            name=folder_name,
            path=build_folder_path(ancestors, folder_name),
        )

    video = RemoteVideo(
        video_id=extract_video_id(raw.get("uri", "")),
        title=raw.get("name") or "",
        folder_id=folder.folder_id if folder else None,
        folder_name=folder.name if folder else None,
        folder_path=folder.path if folder else None,
        file_size=largest_download_size(raw.get("download") or []),
    )
    return video, folder


def group_by_folder(index: CollectionIndex) -> Dict[Optional[str], List[RemoteVideo]]:
    """
    Videos grouped by folder id; ``None`` holds root-level videos.

    Every known folder gets an entry, even when empty.
    """
    groups: Dict[Optional[str], List[RemoteVideo]] = {
        folder_id: [] for folder_id in index.folders
    }
    groups[None] = []
    for video in index.videos:
        groups.setdefault(video.folder_id, []).append(video)
    return groups


class CollectionFetcher:
    """
    Enumerate a whole library, page by page.

    Usage:
        fetcher = CollectionFetcher(requester)
        index = await fetcher.fetch_all(on_progress=print)
    """

    def __init__(
        self,
        requester: RateLimitedRequester,
        base_url: str = VIMEO_API_BASE,
        config: Optional[FetchConfig] = None,
    ):
        self._requester = requester
        self._base_url = base_url.rstrip("/")
        self._config = config or FetchConfig()

    def start_url(self, team_owner_id: Optional[str] = None) -> str:
        owner = (team_owner_id or "").strip()
        base_path = f"{self._base_url}/users/{owner}" if owner else f"{self._base_url}/me"
        return f"{base_path}/videos?per_page={self._config.per_page}"

    async def fetch_all(
        self,
        team_owner_id: Optional[str] = None,
        on_progress: Optional[Callable[[FetchProgress], None]] = None,
    ) -> CollectionIndex:
        """
        Fetch every page. All or nothing: any failure raises and nothing
        accumulated so far is returned.
        """
        def report(p: FetchProgress) -> FetchProgress:
            if on_progress:
                on_progress(p)
            return p

        progress = report(FetchProgress(status="fetching"))
        videos: List[RemoteVideo] = []
        folders: Dict[str, FolderRecord] = {}
        next_url: Optional[str] = self.start_url(team_owner_id)
        current_page = 1

        try:
            while next_url:
                response = await self._requester.get(next_url)
                data = response.json() or {}

                if current_page == 1:
                    total = int(data.get("total") or 0)
                    progress = report(replace(
                        progress,
                        total_pages=math.ceil(total / self._config.per_page),
                        total_videos=total,
                    ))

                for raw in data.get("data") or []:
                    # Live events are not importable
                    if raw.get("type") != "video":
                        continue
                    video, folder = parse_video(raw)
                    if folder and folder.folder_id not in folders:
                        folders[folder.folder_id] = folder
                    videos.append(video)

                progress = report(replace(
                    progress, current_page=current_page, total_videos=len(videos)
                ))
                logger.debug("Fetched page %d (%d videos so far)", current_page, len(videos))

                next_path = (data.get("paging") or {}).get("next")
                next_url = f"{self._base_url}{next_path}" if next_path else None
                current_page += 1
        except Exception as e:
            report(replace(progress, status="error", error_message=f"Error: {describe_error(e)}"))
            raise

        report(replace(
            progress,
            status="complete",
            current_page=progress.total_pages or progress.current_page,
            total_videos=len(videos),
        ))
        logger.info("Collection fetched: %d videos in %d folders", len(videos), len(folders))
        return CollectionIndex(videos=tuple(videos), folders=folders)
