from dataclasses import dataclass
from typing import Dict, List, Callable
import asyncio
import logging

from ..models import ImportItem
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemEvent:
    """Change notification for a single import item."""
    kind: str  # added, updated, removed
    item: ImportItem

    @property
    def item_id(self) -> str:
        return self.item.id

    @property
    def progress(self) -> float:
        return self.item.progress


class EventEmitter:
    """Simple event emitter for import events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    def emit(self, event_name: str, *args, **kwargs):
        """
        Emit without awaiting.

        Plain listeners run inline, coroutine listeners are scheduled on the
        running loop (dropped with a warning when there is none).
        """
        for callback in self._listeners.get(event_name, [])[:]:
            try:
                if asyncio.iscoroutinefunction(callback):
                    try:
                        loop = asyncio.get_running_loop()
                    except RuntimeError:
                        logger.warning(f"No running loop for async listener of {event_name}")
                        continue
                    loop.create_task(callback(*args, **kwargs))
                else:
                    callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")
