"""
Deferred file cleanup for staged uploads and generated CSVs.
"""

import asyncio
from pathlib import Path
from typing import Set, Union

from shared.logging import get_logger


class CleanupScheduler:
    """Unlinks files after a delay without blocking the request that staged them."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self.logger = get_logger("parser.cleanup")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, path: Union[str, Path], delay: float) -> asyncio.Task:
        """Delete path after delay seconds. Must be called from the event loop."""
        task = asyncio.get_running_loop().create_task(self._remove_later(Path(path), delay))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def schedule_async(self, path: Union[str, Path], delay: float) -> None:
        """Coroutine form of schedule, for response background tasks."""
        self.schedule(path, delay)

    async def _remove_later(self, path: Path, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            path.unlink(missing_ok=True)
            self.logger.info("Staged file removed", path=str(path))
        except OSError as e:
            self.logger.warning("Failed to remove staged file", path=str(path), error=str(e))

    async def shutdown(self) -> None:
        """Cancel every pending cleanup."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.logger.info("Cleanup scheduler stopped", cancelled=len(tasks))
