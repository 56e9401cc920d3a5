"""Core orchestrator - coordinates the import queue, pipelines and polls."""
import asyncio
import logging
from typing import Callable, List, Optional, Set

from ..errors import describe_error
from ..models import (
    ImportConfig,
    ImportItem,
    ImportOptions,
    ImportStage,
    StatusClass,
    TRANSFER_STAGES,
)
from ..protocols import IDestinationClient, IPersistenceStore, ISourceClient
from ..services.destination import DEFAULT_API_BASE, IgniteClient
from ..services.source import VimeoClient
from ..services.store import JSONFileStore
from ..utils.events import EventEmitter, ItemEvent
from .pipeline import ImportPipeline
from .poller import PollRegistry
from .queue import ImportQueue

logger = logging.getLogger(__name__)


class ImportOrchestrator:
    """
    Orchestrates Vimeo -> Ignite imports using injected services.

    Each item runs its own pipeline task; items that reach the polling
    stage get exactly one recurring status check.

    Usage:
        async with ImportOrchestrator(vimeo_token, ignite_token) as importer:
            importer.on_item_event(lambda e: print(e.item.status_text))
            importer.start_import("76979871", ImportOptions(visibility="public"))
            await importer.wait()

        # With injected collaborators (tests)
        importer = ImportOrchestrator(source=fake_source, destination=fake_dest,
                                      store=MemoryStore())
    """

    def __init__(
        self,
        vimeo_token: Optional[str] = None,
        ignite_token: Optional[str] = None,
        api_base: str = DEFAULT_API_BASE,
        config: Optional[ImportConfig] = None,
        source: Optional[ISourceClient] = None,
        destination: Optional[IDestinationClient] = None,
        store: Optional[IPersistenceStore] = None,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            vimeo_token: Vimeo API token (ignored when ``source`` is given)
            ignite_token: Ignite API token (ignored when ``destination`` is given)
            api_base: Ignite API base URL
            config: Import configuration
            source: Pre-built source client
            destination: Pre-built destination client
            store: Persistence store (default: JSONFileStore)
        """
        self._config = config or ImportConfig()
        self._owns_clients: List = []

        if source is None:
            if not vimeo_token:
                raise ValueError("Either vimeo_token or source must be provided")
            source = VimeoClient(vimeo_token)
            self._owns_clients.append(source)
        if destination is None:
            if not ignite_token:
                raise ValueError("Either ignite_token or destination must be provided")
            destination = IgniteClient(
                ignite_token,
                api_base,
                thumbnail_max_width=self._config.thumbnail_max_width,
                thumbnail_quality=self._config.thumbnail_quality,
            )
            self._owns_clients.append(destination)

        self._source = source
        self._destination = destination
        self._events = EventEmitter()
        self._queue = ImportQueue(store if store is not None else JSONFileStore(), self._config, self._events)
        self._poller = PollRegistry(self._config.poll_interval)
        self._pipeline = ImportPipeline(source, destination, self._queue, self._config)
        self._running: Set[asyncio.Task] = set()

    async def __aenter__(self):
        """Open owned clients and load the persisted queue."""
        for client in self._owns_clients:
            await client.open()
        self.load()
        return self

    async def __aexit__(self, *args):
        await self.close()

    @property
    def queue(self) -> ImportQueue:
        return self._queue

    @property
    def poller(self) -> PollRegistry:
        return self._poller

    @property
    def items(self):
        return self._queue.items()

    @property
    def has_active_transfers(self) -> bool:
        """True while any item is between checking and thumbnail upload."""
        return any(i.stage in TRANSFER_STAGES for i in self._queue.items())

    def on_item_event(self, callback: Callable[[ItemEvent], None]) -> None:
        """Subscribe to item added/updated/removed events."""
        self._events.on("item", callback)

    def load(self):
        """Load persisted items (interrupted transfers become errors)."""
        return self._queue.load()

    # =========================================================================
    # Imports
    # =========================================================================

    def start_import(self, source_id: str, options: Optional[ImportOptions] = None) -> ImportItem:
        """
        Queue a new import and start its pipeline in the background.

        The options are snapshotted into the item; later changes to the
        caller's settings do not affect it.
        """
        if not source_id or not source_id.strip():
            raise ValueError("source_id must not be empty")
        item = self._queue.add(ImportItem.create(source_id, options))
        logger.info("Import %s queued for video %s", item.id, item.source_id)

        task = asyncio.get_running_loop().create_task(self.run_import(item), name=f"import-{item.id}")
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return item

    async def run_import(self, item: ImportItem) -> Optional[ImportItem]:
        """Run the pipeline for a queued item and hand it over to polling."""
        result = await self._pipeline.run(item)
        if result is None:
            return None
        if result.stage == ImportStage.POLLING:
            self.poll_status(result.id)
        elif result.stage == ImportStage.ERROR:
            self._poller.cancel(result.id)
        return self._queue.get(result.id)

    # =========================================================================
    # Polling
    # =========================================================================

    def poll_status(self, item_id: str) -> Optional[asyncio.Task]:
        """Start the recurring status check for ``item_id`` (idempotent)."""
        item = self._queue.get(item_id)
        if item is None or item.stage != ImportStage.POLLING or not item.destination_id:
            logger.warning("Not polling %s: no polling item with a destination record", item_id)
            return None

        async def tick() -> bool:
            return await self._poll_once(item_id)

        return self._poller.register(item_id, tick)

    async def _poll_once(self, item_id: str) -> bool:
        """One status check. Returns True when polling should stop."""
        item = self._queue.get(item_id)
        if item is None or item.stage != ImportStage.POLLING:
            return True

        status = (await self._destination.get_status(item.destination_id) or "").upper()

        # The item may have been removed while the request was in flight
        item = self._queue.update(
            item_id, lambda i: i.with_status(f"Processing: {status}")
        )
        if item is None or item.stage != ImportStage.POLLING:
            return True

        outcome = self._config.classify_status(status)
        if outcome == StatusClass.DONE:
            self._queue.update(item_id, lambda i: i.complete())
            logger.info("Import %s complete (record %s)", item_id, item.destination_id)
            return True
        if outcome == StatusClass.ERROR:
            self._queue.update(item_id, lambda i: i.fail(f"Encoding failed: {status}"))
            logger.error("Import %s encoding failed: %s", item_id, status)
            return True
        return False

    def resume(self) -> int:
        """Re-register polls for persisted polling items. Returns how many."""
        resumed = 0
        for item in self._queue.in_stage(ImportStage.POLLING):
            if self._poller.is_active(item.id):
                continue
            if self.poll_status(item.id) is not None:
                resumed += 1
        if resumed:
            logger.info("Resumed polling for %d imports", resumed)
        return resumed

    # =========================================================================
    # Removal
    # =========================================================================

    def remove(self, item_id: str) -> Optional[ImportItem]:
        """Stop polling and drop an item from the queue."""
        self._poller.cancel(item_id)
        return self._queue.remove(item_id)

    def clear_finished(self) -> List[str]:
        """Drop all complete and failed items."""
        for item in self._queue.items():
            if item.is_terminal:
                self._poller.cancel(item.id)
        return self._queue.clear_finished()

    def fail(self, item_id: str, error: BaseException) -> Optional[ImportItem]:
        """Force an item into error, keeping everything it already has."""
        message = describe_error(error)
        self._poller.cancel(item_id)
        return self._queue.update(item_id, lambda i: i if i.is_terminal else i.fail(message))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def wait(self) -> None:
        """Wait for every running pipeline and every poll to finish."""
        while True:
            pending = [t for t in self._running if not t.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        await self._poller.wait_all()

    async def close(self) -> None:
        """Cancel polls and close owned clients. Writes are already flushed."""
        self._poller.cancel_all()
        for task in list(self._running):
            task.cancel()
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
        for client in self._owns_clients:
            await client.aclose()
