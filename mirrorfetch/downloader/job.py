"""State machine driving a single download job."""

import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Set

from ..download import Descriptor
from ..errors import ErrorKind, MirrorFetchError
from .gate import commit, verify_staged
from .selector import MirrorSelector
from .worker import TransferOutcome, TransferWorker

logger = logging.getLogger(__name__)


class JobPhase(enum.Enum):
    PENDING = "pending"
    SELECTING = "selecting"
    TRANSFERRING = "transferring"
    VERIFYING = "verifying"
    COMMITTING = "committing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class JobContext:
    """Mutable state of one job, owned by its DownloadJob."""
    descriptor: Descriptor
    tried: Set[str] = field(default_factory=set)
    attempts: int = 0
    staging_path: Optional[Path] = None
    last_error: Optional[ErrorKind] = None
    last_message: Optional[str] = None
    phase: JobPhase = JobPhase.PENDING


@dataclass(frozen=True)
class JobResult:
    """Final outcome of one job."""
    index: int
    ok: bool
    target_name: Path
    final_path: Optional[Path] = None
    location: Optional[str] = None
    reason: Optional[ErrorKind] = None
    message: Optional[str] = None
    attempts_made: int = 0
    bytes_written: int = 0
    duration: float = 0.0

    @classmethod
    def succeeded(cls, index: int, descriptor: Descriptor, final_path: Path, location: str,
                  attempts_made: int, bytes_written: int, duration: float = 0.0):
        return cls(index=index, ok=True, target_name=descriptor.target_name,
                   final_path=final_path, location=location, attempts_made=attempts_made,
                   bytes_written=bytes_written, duration=duration)

    @classmethod
    def failed(cls, index: int, descriptor: Descriptor, reason: ErrorKind, message: str,
               attempts_made: int, duration: float = 0.0):
        return cls(index=index, ok=False, target_name=descriptor.target_name, reason=reason,
                   message=message, attempts_made=attempts_made, duration=duration)


AttemptHook = Callable[["DownloadJob", str, TransferOutcome], None]


class DownloadJob:
    """Selects mirrors, transfers, verifies and commits one descriptor.

    Every failed location (transfer error or failed verification) is added
    to `tried` and never selected again. The job stops at the first
    success, at the first fatal error, or when no untried location or
    attempt budget is left.
    """

    def __init__(
        self,
        index: int,
        descriptor: Descriptor,
        worker: TransferWorker,
        selector: MirrorSelector,
        download_dir: Path,
        staging_dir: Path,
        max_attempts: Optional[int] = None,
        on_progress: Optional[Callable[[int, int, Optional[int]], None]] = None,
        on_attempt: Optional[AttemptHook] = None,
    ):
        self.index = index
        self.descriptor = descriptor
        self.worker = worker
        self.selector = selector
        self.final_path = descriptor.final_path(download_dir)
        self.staging_dir = staging_dir
        self.max_attempts = max_attempts or len(set(descriptor.sources))
        self.on_progress = on_progress
        self.on_attempt = on_attempt
        self.context = JobContext(descriptor)
        self._start_time: Optional[float] = None

    @property
    def phase(self) -> JobPhase:
        return self.context.phase

    @property
    def attempts(self) -> int:
        return self.context.attempts

    def elapsed(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.monotonic() - self._start_time

    def _new_staging_path(self) -> Path:
        return self.staging_dir / (
            f"{self.index}-{self.context.attempts}-{uuid.uuid4().hex}.part"
        )

    def _progress(self, bytes_transferred: int, total: Optional[int]) -> None:
        if self.on_progress is not None:
            self.on_progress(self.index, bytes_transferred, total)

    def _discard_staging(self) -> None:
        if self.context.staging_path is not None:
            self.context.staging_path.unlink(missing_ok=True)
            self.context.staging_path = None

    def _mark_tried(self, location: str, kind: ErrorKind, message: str) -> None:
        ctx = self.context
        ctx.tried.add(location)
        ctx.last_error = kind
        ctx.last_message = message
        ctx.phase = JobPhase.SELECTING
        self._discard_staging()

    def _fail(self, kind: ErrorKind, message: str) -> JobResult:
        self.context.phase = JobPhase.FAILED
        logger.error("%s failed after %d attempt(s): %s",
                     self.descriptor.display_name, self.context.attempts, message)
        return JobResult.failed(self.index, self.descriptor, kind, message,
                                self.context.attempts, self.elapsed())

    def _exhausted(self, why: str) -> JobResult:
        ctx = self.context
        message = why
        if ctx.last_message:
            message = f"{why}; last error: {ctx.last_message}"
        return self._fail(ErrorKind.SOURCES_EXHAUSTED, message)

    async def run(self) -> JobResult:
        ctx = self.context
        self._start_time = time.monotonic()
        try:
            while True:
                ctx.phase = JobPhase.SELECTING
                if ctx.attempts >= self.max_attempts:
                    return self._exhausted(f"Attempt budget of {self.max_attempts} used up")

                location = self.selector.select(self.descriptor.sources, ctx.tried)
                if location is None:
                    return self._exhausted("All sources tried")

                ctx.attempts += 1
                ctx.staging_path = self._new_staging_path()
                ctx.phase = JobPhase.TRANSFERRING
                logger.debug("%s: attempt %d from %s", self.descriptor.display_name,
                             ctx.attempts, location)

                outcome = await self.worker.attempt(location, ctx.staging_path, self._progress)
                if self.on_attempt is not None:
                    self.on_attempt(self, location, outcome)

                if outcome.is_fatal:
                    return self._fail(outcome.kind, outcome.reason)
                if not outcome.ok:
                    logger.warning("%s: %s", self.descriptor.display_name, outcome.reason)
                    self._mark_tried(location, outcome.kind, outcome.reason)
                    continue

                ctx.phase = JobPhase.VERIFYING
                if not await verify_staged(ctx.staging_path, self.descriptor.verify):
                    message = f"Verification failed for data from {location}"
                    logger.warning("%s: %s", self.descriptor.display_name, message)
                    self._mark_tried(location, ErrorKind.VERIFICATION_FAILED, message)
                    continue

                ctx.phase = JobPhase.COMMITTING
                try:
                    final_path = commit(ctx.staging_path, self.final_path,
                                        self.descriptor.collision_policy)
                except MirrorFetchError as e:
                    return self._fail(e.kind, str(e))
                ctx.staging_path = None

                ctx.phase = JobPhase.SUCCEEDED
                logger.info("Downloaded %s from %s", final_path, location)
                return JobResult.succeeded(self.index, self.descriptor, final_path, location,
                                           ctx.attempts, outcome.bytes_written, self.elapsed())
        finally:
            self._discard_staging()
