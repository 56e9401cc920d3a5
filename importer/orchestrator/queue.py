"""Import queue - the persisted collection of import items."""
import json
import logging
from typing import Callable, List, Optional, Tuple

from ..models import ImportConfig, ImportItem, ImportStage, RESUMABLE_STAGES, TERMINAL_STAGES
from ..protocols import IPersistenceStore
from ..utils.events import EventEmitter, ItemEvent

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Import was interrupted. Please try again."


def reclassify_on_load(item: ImportItem) -> ImportItem:
    """
    Decide what a persisted item becomes after a restart.

    Terminal items and polling items with a destination record survive
    as-is; anything mid-transfer cannot be trusted and becomes an error.
    """
    if item.stage in TERMINAL_STAGES:
        return item
    if item.stage in RESUMABLE_STAGES and item.destination_id:
        return item
    return item.fail(INTERRUPTED_MESSAGE, status_text="Interrupted")


class ImportQueue:
    """
    Owned collection of import items with write-through persistence.

    All mutations go through ``update``: it applies a per-item transform to
    the current collection and saves the whole collection before returning.
    """

    def __init__(
        self,
        store: IPersistenceStore,
        config: Optional[ImportConfig] = None,
        events: Optional[EventEmitter] = None,
    ):
        self._store = store
        self._config = config or ImportConfig()
        self._events = events or EventEmitter()
        self._items: List[ImportItem] = []

    @property
    def events(self) -> EventEmitter:
        return self._events

    def load(self) -> Tuple[ImportItem, ...]:
        """
        Replace the in-memory collection with the persisted one.

        Items interrupted mid-transfer are marked as failed and saved back.
        """
        raw = self._store.load(self._config.storage_key)
        items: List[ImportItem] = []
        if raw:
            try:
                entries = json.loads(raw)
                if not isinstance(entries, list):
                    raise ValueError("stored queue is not a list")
            except ValueError as e:
                logger.warning("Failed to parse stored imports: %s", e)
                entries = []
            for entry in entries:
                try:
                    items.append(ImportItem.from_dict(entry))
                except (AttributeError, KeyError, TypeError, ValueError) as e:
                    logger.warning("Skipping unreadable stored import %r: %s", entry, e)

        loaded = [reclassify_on_load(item) for item in items]
        self._items = loaded
        interrupted = sum(1 for old, new in zip(items, loaded) if old is not new)
        if interrupted:
            logger.info("Marked %d interrupted imports as failed", interrupted)
            self._persist()
        logger.debug("Loaded %d imports", len(loaded))
        return tuple(loaded)

    def _persist(self) -> None:
        payload = json.dumps([item.to_dict() for item in self._items])
        self._store.save(self._config.storage_key, payload)

    def items(self) -> Tuple[ImportItem, ...]:
        return tuple(self._items)

    def get(self, item_id: str) -> Optional[ImportItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: str) -> bool:
        return self.get(item_id) is not None

    def add(self, item: ImportItem) -> ImportItem:
        """Prepend a new item (newest first) and persist immediately."""
        if item.id in self:
            raise ValueError(f"Duplicate import id: {item.id}")
        self._items = [item] + self._items
        self._persist()
        self._events.emit("item", ItemEvent("added", item))
        return item

    def update(
        self,
        item_id: str,
        transform: Callable[[ImportItem], ImportItem],
    ) -> Optional[ImportItem]:
        """
        Apply ``transform`` to the latest version of one item and persist.

        Returns the new item, or None when the id is unknown (e.g. removed
        while an async step was running).
        """
        updated: Optional[ImportItem] = None
        items = []
        for item in self._items:
            if item.id == item_id:
                updated = transform(item)
                items.append(updated)
            else:
                items.append(item)
        if updated is None:
            return None
        self._items = items
        self._persist()
        self._events.emit("item", ItemEvent("updated", updated))
        return updated

    def remove(self, item_id: str) -> Optional[ImportItem]:
        item = self.get(item_id)
        if item is None:
            return None
        self._items = [i for i in self._items if i.id != item_id]
        self._persist()
        self._events.emit("item", ItemEvent("removed", item))
        return item

    def clear_finished(self) -> List[str]:
        """Drop all complete/error items; returns the removed ids."""
        finished = [i for i in self._items if i.is_terminal]
        if not finished:
            return []
        self._items = [i for i in self._items if not i.is_terminal]
        self._persist()
        for item in finished:
            self._events.emit("item", ItemEvent("removed", item))
        return [i.id for i in finished]

    def in_stage(self, stage: ImportStage) -> List[ImportItem]:
        return [i for i in self._items if i.stage == stage]
