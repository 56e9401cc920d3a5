"""Poll registry - one recurring status check per import item."""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)

# Returns True once the item reached a terminal stage
Tick = Callable[[], Awaitable[bool]]


class PollRegistry:
    """
    Explicit registry: item id -> polling task.

    Rules:
    - register() on an id with a live task is a no-op returning that task
    - a finished task is replaced (cancelled first, if somehow still set)
    - cancel() stops and forgets the task; nothing fires afterwards
    """

    def __init__(self, interval: float = 10.0):
        self._interval = interval
        self._tasks: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    def is_active(self, item_id: str) -> bool:
        task = self._tasks.get(item_id)
        return task is not None and not task.done()

    def active_ids(self) -> List[str]:
        return [item_id for item_id, t in self._tasks.items() if not t.done()]

    def register(self, item_id: str, tick: Tick) -> asyncio.Task:
        existing = self._tasks.get(item_id)
        if existing is not None:
            if not existing.done():
                logger.debug("Poll for %s already running", item_id)
                return existing
            existing.cancel()
            del self._tasks[item_id]

        task = asyncio.get_running_loop().create_task(
            self._run(item_id, tick), name=f"poll-{item_id}"
        )
        self._tasks[item_id] = task
        task.add_done_callback(lambda t, item_id=item_id: self._forget(item_id, t))
        logger.debug("Poll registered for %s", item_id)
        return task

    async def _run(self, item_id: str, tick: Tick) -> None:
        while True:
            try:
                finished = await tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Poll error for %s: %s", item_id, e)
                finished = False
            if finished:
                return
            await asyncio.sleep(self._interval)

    def _forget(self, item_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(item_id) is task:
            del self._tasks[item_id]

    def cancel(self, item_id: str) -> bool:
        """Stop polling ``item_id``. Returns whether a live poll existed."""
        task = self._tasks.pop(item_id, None)
        if task is None:
            return False
        live = not task.done()
        # Cancelling from inside the task itself is harmless: the loop ends
        # at its next await.
        task.cancel()
        if live:
            logger.debug("Poll cancelled for %s", item_id)
        return live

    def cancel_all(self) -> None:
        for item_id in list(self._tasks):
            self.cancel(item_id)

    async def wait_all(self) -> None:
        """Wait until every registered poll has finished or been cancelled."""
        while self._tasks:
            tasks = list(self._tasks.values())
            await asyncio.gather(*tasks, return_exceptions=True)
            for item_id, task in list(self._tasks.items()):
                if task.done():
                    self._tasks.pop(item_id, None)
