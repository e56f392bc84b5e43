import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class SingleSlotTask:
    """
    Holds at most one scheduled coroutine.

    `schedule()` cancels whatever is pending in the slot before arming the
    new delay, so a burst of triggers collapses into the last one.
    """

    def __init__(self, name: str):
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(
        self, delay: float, factory: Callable[[], Awaitable[None]]
    ) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(
            self._run(delay, factory), name=self.name
        )
        return self._task

    async def _run(self, delay: float, factory: Callable[[], Awaitable[None]]):
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            await factory()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled task '%s' failed", self.name)

    def cancel(self) -> bool:
        # A task never cancels itself through its own slot.
        if self.pending and self._task is not _current_task():
            self._task.cancel()
            return True
        return False

    async def wait(self) -> None:
        """Waits for the task currently in the slot, if any."""
        task = self._task
        if task is None or task.done():
            return
        # asyncio.wait neither raises when the slot's task is cancelled nor
        # cancels it when the waiter is; the waiter's own cancellation propagates.
        await asyncio.wait({task})
