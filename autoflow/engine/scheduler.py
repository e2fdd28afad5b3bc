"""
Delay scheduler.

Periodically resumes suspended runs whose resume time has passed. The run
store's atomic claim keeps a run from being resumed twice when a tick and a
manual resume race.
"""

from typing import Optional, TYPE_CHECKING
from datetime import datetime
import asyncio
import logging

from autoflow.config import settings
from autoflow.engine.models import utcnow

if TYPE_CHECKING:
    from autoflow.engine.executor import WorkflowExecutor
    from autoflow.storage.base import RunStore


logger = logging.getLogger(__name__)


class DelayScheduler:
    """
    Background loop around ``tick()``.

    Usage:
        scheduler = DelayScheduler(runs, executor)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        runs: "RunStore",
        executor: "WorkflowExecutor",
        interval: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        self.runs = runs
        self.executor = executor
        self.interval = settings.SCHEDULER_INTERVAL if interval is None else interval
        self.batch_size = batch_size or settings.SCHEDULER_BATCH_SIZE
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self, now: Optional[datetime] = None) -> int:
        """
        Resume every due run once.

        Returns:
            Number of runs that were due
        """
        due = await self.runs.list_due(now or utcnow(), self.batch_size)
        if not due:
            return 0

        logger.info(f"Resuming {len(due)} delayed run(s)")
        results = await asyncio.gather(
            *(self.executor.resume(run.run_id) for run in due),
            return_exceptions=True,
        )
        for run, result in zip(due, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to resume run {run.run_id}: {result}")
        return len(due)

    async def _loop(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Delay scheduler tick failed: {e}")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(f"Delay scheduler started (every {self.interval:g}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Delay scheduler stopped")
