"""
Asynchronous Training Handle
Runs a blocking training job in a worker thread and streams per-epoch progress.

Usage:
    handle = orchestrator.start_training(records)
    async for progress in handle.progress():
        print(progress.progress_percent, progress.loss)
    metrics = await handle
"""

import asyncio
import threading
from typing import AsyncIterator, Callable, Optional

from healthcast.ml_models.network import EpochProgress
from healthcast.utils.logger import get_logger

logger = get_logger(__name__)

_DONE = object()

TrainingJob = Callable[[Callable[[EpochProgress], None], Callable[[], bool]], object]


class TrainingHandle:
    """
    Awaitable, cancellable wrapper around a training job.

    The job receives two callables: one to report an EpochProgress and one to
    poll for cancellation. Must be started from inside a running event loop.
    """

    def __init__(self, scenario: str, job: TrainingJob):
        self.scenario = scenario
        self._job = job
        self._stop = threading.Event()
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Future] = None
        self.latest: Optional[EpochProgress] = None

    def start(self) -> 'TrainingHandle':
        if self._task is not None:
            return self
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()

        def report(progress: EpochProgress):
            self.latest = progress
            loop.call_soon_threadsafe(self._queue.put_nowait, progress)

        def run():
            try:
                return self._job(report, self._stop.is_set)
            finally:
                loop.call_soon_threadsafe(self._queue.put_nowait, _DONE)

        self._task = asyncio.ensure_future(asyncio.to_thread(run))
        logger.info(f"Training started for '{self.scenario}'")
        return self

    def cancel(self):
        """Asks the job to stop after the current epoch."""
        self._stop.set()

    @property
    def cancel_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def progress(self) -> AsyncIterator[EpochProgress]:
        """Yields progress events until the job finishes."""
        if self._task is None:
            self.start()
        while True:
            item = await self._queue.get()
            if item is _DONE:
                return
            yield item

    async def result(self):
        """Waits for the job. Re-raises whatever the job raised."""
        if self._task is None:
            self.start()
        return await self._task

    def __await__(self):
        return self.result().__await__()
