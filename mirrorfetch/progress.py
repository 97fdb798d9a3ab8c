"""Progress reporting for running downloads."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Optional, Tuple

from rich.console import Console
from rich.progress import (
    BarColumn, DownloadColumn, Progress, TaskID, TextColumn,
    TimeElapsedColumn, TransferSpeedColumn
)

logger = logging.getLogger(__name__)

# (job_id, bytes_transferred, total_bytes_if_known)
ProgressSink = Callable[[int, int, Optional[int]], None]


class ProgressAggregator:
    """Delivers per-job progress events to their sinks without blocking publishers.

    `publish` only records the latest state of a job and wakes the
    dispatcher task; sinks are invoked from the aggregator's own worker
    thread, which `close` abandons if a sink is stuck. When a sink
    is slower than the transfer, intermediate events of that job are
    coalesced into the most recent one.
    """

    def __init__(self):
        self._sinks: Dict[int, ProgressSink] = {}
        self._latest: Dict[int, Tuple[int, Optional[int]]] = {}
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self._executor: Optional[ThreadPoolExecutor] = None
        self.coalesced = 0

    def register(self, job_id: int, sink: ProgressSink) -> None:
        self._sinks[job_id] = sink

    def publish(self, job_id: int, bytes_transferred: int, total: Optional[int]) -> None:
        if job_id not in self._sinks:
            return
        if job_id in self._latest:
            self.coalesced += 1
        self._latest[job_id] = (bytes_transferred, total)
        self._wakeup.set()

    def start(self) -> None:
        if self._task is None:
            self._executor = ThreadPoolExecutor(max_workers=1,
                                                thread_name_prefix="mirrorfetch-progress")
            self._task = asyncio.create_task(self._dispatch(), name="mirrorfetch-progress")

    async def _dispatch(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()

            pending, self._latest = self._latest, {}
            for job_id, (done, total) in pending.items():
                sink = self._sinks[job_id]
                try:
                    await loop.run_in_executor(self._executor, sink, job_id, done, total)
                except Exception:
                    logger.exception("Progress sink for job %d failed", job_id)

            if self._closing and not self._latest:
                return

    async def close(self, timeout: float = 5.0) -> None:
        """Flush pending events, giving up on sinks still busy after `timeout`."""
        if self._task is None:
            return
        self._closing = True
        self._wakeup.set()
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout)
        except TimeoutError:
            logger.warning("Progress delivery did not finish within %.1fs", timeout)
            self._task.cancel()
        finally:
            # Never join the worker here: a stuck sink would block the caller
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
            self._task = None


class RichProgressSink:
    """Progress sink rendering one rich progress bar per job."""

    def __init__(self, console: Optional[Console] = None):
        self.progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            console=console,
        )
        self._tasks: Dict[int, TaskID] = {}

    def add_job(self, job_id: int, description: str) -> None:
        self._tasks[job_id] = self.progress.add_task(description, total=None)

    def __call__(self, job_id: int, bytes_transferred: int, total: Optional[int]) -> None:
        task_id = self._tasks.get(job_id)
        if task_id is None:
            return
        self.progress.update(task_id, completed=bytes_transferred, total=total)

    def __enter__(self):
        self.progress.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.progress.stop()
