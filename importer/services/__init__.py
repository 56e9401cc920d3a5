"""Services for importer module."""
from .api_client import HTTPAPIClient
from .collection import (
    CollectionFetcher,
    CollectionIndex,
    FetchProgress,
    FolderRecord,
    RemoteVideo,
    group_by_folder,
)
from .destination import CreatedRecord, ExistingRecord, IgniteClient
from .rate_limit import RateLimitedRequester, RetryState
from .source import DownloadedFile, VimeoClient
from .store import JSONFileStore, MemoryStore

__all__ = [
    "HTTPAPIClient",
    "CollectionFetcher",
    "CollectionIndex",
    "FetchProgress",
    "FolderRecord",
    "RemoteVideo",
    "group_by_folder",
    "CreatedRecord",
    "ExistingRecord",
    "IgniteClient",
    "RateLimitedRequester",
    "RetryState",
    "DownloadedFile",
    "VimeoClient",
    "JSONFileStore",
    "MemoryStore",
]
