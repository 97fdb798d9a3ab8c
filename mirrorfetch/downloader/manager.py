"""Download manager running a batch of jobs concurrently."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config import Config
from ..download import Descriptor
from ..errors import ErrorKind
from ..http_client import Fetcher, HTTPFetcher
from ..progress import ProgressAggregator
from ..utils import (
    append_jsonl, ensure_directory, format_bytes, format_duration,
    get_timestamp, load_jsonl
)
from .job import DownloadJob, JobResult
from .selector import MirrorSelector, RandomSelector
from .worker import TransferOutcome, TransferWorker

logger = logging.getLogger(__name__)
console = Console()


@dataclass
class BatchResult:
    """Per-job results, in the order the descriptors were submitted."""
    results: List[JobResult] = field(default_factory=list)
    duration: float = 0.0

    def __iter__(self) -> Iterator[JobResult]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, index: int) -> JobResult:
        return self.results[index]

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return len(self.results) - self.successful

    @property
    def total_bytes(self) -> int:
        return sum(r.bytes_written for r in self.results if r.ok)

    @property
    def all_ok(self) -> bool:
        return self.failed == 0


class DownloadManager:
    """Runs descriptors as independent jobs under a concurrency limit.

    Jobs never share state except the admission semaphore. Failures stay
    inside their job; the batch always yields one result per descriptor.
    """

    def __init__(
        self,
        config: Config,
        fetcher: Optional[Fetcher] = None,
        selector: Optional[MirrorSelector] = None,
    ):
        self.config = config
        self.fetcher = fetcher
        self.selector = selector or RandomSelector()
        self.download_dir = Path(config.downloader.download_dir)
        self.staging_dir = config.downloader.resolved_staging_dir()
        self.history_file = (
            Path(config.downloader.history_file) if config.downloader.history_file else None
        )
        self._cancel_event: Optional[asyncio.Event] = None

    def cancel(self) -> None:
        """Cancel the running batch: in-flight and waiting jobs fail as cancelled."""
        if self._cancel_event is not None:
            self._cancel_event.set()

    def _log_download_attempt(self, job: DownloadJob, location: str,
                              outcome: TransferOutcome) -> None:
        """Log download attempt to history."""
        if self.history_file is None:
            return
        attempt = {
            'job': job.index,
            'location': location,
            'target': str(job.final_path),
            'attempt': job.attempts,
            'ok': outcome.ok,
            'error': outcome.kind.value if outcome.kind else None,
            'message': outcome.reason,
            'bytes': outcome.bytes_written,
            'duration': outcome.duration,
            'at': get_timestamp(),
        }
        try:
            append_jsonl(self.history_file, attempt)
        except OSError as e:
            logger.warning("Cannot write download history %s: %s", self.history_file, e)

    async def _run_job(self, job: DownloadJob, admission: asyncio.Semaphore) -> JobResult:
        async with admission:
            return await job.run()

    @staticmethod
    async def _watch_cancel(cancel_event: asyncio.Event, tasks: List[asyncio.Task]) -> None:
        await cancel_event.wait()
        logger.warning("Batch cancelled")
        for task in tasks:
            task.cancel()

    @staticmethod
    def _collect(job: DownloadJob, task: asyncio.Task) -> JobResult:
        if task.cancelled():
            return JobResult.failed(job.index, job.descriptor, ErrorKind.CANCELLED,
                                    "Cancelled", job.attempts, job.elapsed())
        error = task.exception()
        if error is not None:
            logger.error("Job %d crashed: %r", job.index, error)
            return JobResult.failed(job.index, job.descriptor, ErrorKind.INTERNAL_ERROR,
                                    f"{type(error).__name__}: {error}", job.attempts,
                                    job.elapsed())
        return task.result()

    async def run(
        self,
        descriptors: Iterable[Descriptor],
        max_concurrency: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """Download every descriptor; results are in submission order."""
        descriptors = list(descriptors)
        limit = max_concurrency if max_concurrency is not None else \
            self.config.downloader.max_concurrency
        if limit < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {limit}")

        if not descriptors:
            return BatchResult()

        start_time = time.monotonic()
        try:
            ensure_directory(self.staging_dir)
        except OSError as e:
            message = f"Cannot create staging directory {self.staging_dir}: {e}"
            logger.error("Cannot create staging directory %s: %s", self.staging_dir, e)
            return BatchResult(
                results=[
                    JobResult.failed(index, descriptor, ErrorKind.LOCAL_IO_ERROR, message, 0)
                    for index, descriptor in enumerate(descriptors)
                ],
                duration=time.monotonic() - start_time,
            )

        self._cancel_event = cancel_event or asyncio.Event()

        fetcher = self.fetcher or HTTPFetcher(self.config)
        worker = TransferWorker(fetcher, self.config.downloader.attempt_timeout_s,
                                fsync=self.config.downloader.fsync)

        aggregator = ProgressAggregator()
        for index, descriptor in enumerate(descriptors):
            if descriptor.progress is not None:
                aggregator.register(index, descriptor.progress)
        aggregator.start()

        jobs = [
            DownloadJob(
                index, descriptor, worker, self.selector,
                download_dir=self.download_dir,
                staging_dir=self.staging_dir,
                max_attempts=self.config.downloader.max_attempts,
                on_progress=aggregator.publish,
                on_attempt=self._log_download_attempt,
            )
            for index, descriptor in enumerate(descriptors)
        ]

        admission = asyncio.Semaphore(limit)
        logger.info("Starting %d download(s), %d at a time", len(jobs), limit)
        tasks = [
            asyncio.create_task(self._run_job(job, admission), name=f"mirrorfetch-job-{job.index}")
            for job in jobs
        ]
        watcher = asyncio.create_task(self._watch_cancel(self._cancel_event, tasks))

        try:
            await asyncio.wait(tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            await aggregator.close(self.config.downloader.progress_timeout_s)
            if self.fetcher is None:
                await fetcher.close()
            self._cancel_event = None

        batch = BatchResult(
            results=[self._collect(job, task) for job, task in zip(jobs, tasks)],
            duration=time.monotonic() - start_time,
        )
        logger.info("Batch finished: %d ok, %d failed", batch.successful, batch.failed)
        return batch

    def get_download_history(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get recent download attempts."""
        if self.history_file is None:
            return []
        return load_jsonl(self.history_file)[-limit:]


def run_batch(
    config: Config,
    descriptors: Iterable[Descriptor],
    max_concurrency: Optional[int] = None,
    fetcher: Optional[Fetcher] = None,
    selector: Optional[MirrorSelector] = None,
) -> BatchResult:
    """Run a batch to completion from synchronous code."""
    manager = DownloadManager(config, fetcher=fetcher, selector=selector)
    return asyncio.run(manager.run(descriptors, max_concurrency))


def display_batch_summary(batch: BatchResult, out: Optional[Console] = None) -> None:
    """Display download statistics."""
    out = out or console

    table = Table(title="Download Summary")
    table.add_column("#", style="dim")
    table.add_column("File", style="cyan")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Details", style="dim")

    for result in batch:
        if result.ok:
            status = "[green]✓ ok[/green]"
            details = result.location or ""
        else:
            status = f"[red]✗ {result.reason.value}[/red]"
            details = result.message or ""
        table.add_row(
            str(result.index + 1),
            escape(str(result.final_path or result.target_name)),
            status,
            str(result.attempts_made),
            format_bytes(result.bytes_written) if result.ok else "-",
            escape(details),
        )

    out.print(table)
    out.print(
        f"[bold]{batch.successful}[/bold] succeeded, [bold]{batch.failed}[/bold] failed, "
        f"{format_bytes(batch.total_bytes)} in {format_duration(batch.duration)}"
    )
