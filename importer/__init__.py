"""
Importer - move videos from Vimeo to Ignite Video Cloud.

Two independent parts:
- ImportOrchestrator: runs each import through its stages
  (checking -> fetching_metadata -> downloading -> creating_record ->
  uploading -> uploading_thumbnail -> polling -> complete), persisting
  after every change and resuming polls after a restart.
- CollectionFetcher: enumerates a whole Vimeo library under the API's
  rate limits, with folder paths.

Usage:
    from importer import ImportOrchestrator, ImportOptions

    async with ImportOrchestrator(vimeo_token, ignite_token) as importer:
        importer.resume()
        importer.start_import("76979871", ImportOptions(tags="imported"))
        await importer.wait()

    # Library index
    async with HTTPAPIClient(VIMEO_API_BASE, token=vimeo_token) as api:
        fetcher = CollectionFetcher(RateLimitedRequester(api))
        index = await fetcher.fetch_all()
        groups = group_by_folder(index)
"""
from .errors import (
    APIError,
    DuplicateImportError,
    FileTooLargeError,
    ImporterError,
    NoRenditionError,
    RateLimitExceededError,
    describe_error,
)
from .models import (
    FetchConfig,
    ImportConfig,
    ImportItem,
    ImportOptions,
    ImportStage,
    SourceMetadata,
)
from .orchestrator import ImportOrchestrator
from .services import (
    CollectionFetcher,
    CollectionIndex,
    FetchProgress,
    FolderRecord,
    HTTPAPIClient,
    IgniteClient,
    JSONFileStore,
    MemoryStore,
    RateLimitedRequester,
    RemoteVideo,
    VimeoClient,
    group_by_folder,
)
from .services.source import VIMEO_API_BASE

__version__ = "0.3.0"
__all__ = [
    # Main
    "ImportOrchestrator",
    "CollectionFetcher",
    # Models
    "ImportItem",
    "ImportStage",
    "ImportOptions",
    "ImportConfig",
    "FetchConfig",
    "SourceMetadata",
    "CollectionIndex",
    "FetchProgress",
    "FolderRecord",
    "RemoteVideo",
    "group_by_folder",
    # Services
    "HTTPAPIClient",
    "IgniteClient",
    "VimeoClient",
    "VIMEO_API_BASE",
    "JSONFileStore",
    "MemoryStore",
    "RateLimitedRequester",
    # Errors
    "ImporterError",
    "APIError",
    "DuplicateImportError",
    "NoRenditionError",
    "FileTooLargeError",
    "RateLimitExceededError",
    "describe_error",
]
