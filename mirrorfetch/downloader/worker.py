"""Transfer worker: one attempt of one job against one mirror."""

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..errors import ErrorKind, InvalidLocationError, LocalIOError, SourceError
from ..http_client import Fetcher
from ..utils import fsync_file

logger = logging.getLogger(__name__)

OnProgress = Callable[[int, Optional[int]], None]


class OutcomeStatus(enum.Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class TransferOutcome:
    """Result of a single transfer attempt."""
    status: OutcomeStatus
    bytes_written: int = 0
    staged_path: Optional[Path] = None
    kind: Optional[ErrorKind] = None
    reason: Optional[str] = None
    duration: float = 0.0

    @classmethod
    def success(cls, bytes_written: int, staged_path: Path, duration: float = 0.0):
        return cls(OutcomeStatus.SUCCESS, bytes_written, staged_path, duration=duration)

    @classmethod
    def retryable(cls, reason: str, kind: ErrorKind = ErrorKind.SOURCE_UNAVAILABLE,
                  bytes_written: int = 0, duration: float = 0.0):
        return cls(OutcomeStatus.RETRYABLE, bytes_written, kind=kind, reason=reason,
                   duration=duration)

    @classmethod
    def fatal(cls, reason: str, kind: ErrorKind, bytes_written: int = 0,
              duration: float = 0.0):
        return cls(OutcomeStatus.FATAL, bytes_written, kind=kind, reason=reason,
                   duration=duration)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @property
    def is_fatal(self) -> bool:
        return self.status is OutcomeStatus.FATAL


class TransferWorker:
    """Streams one location into a staging file and classifies the outcome.

    The worker never touches the final target. Whatever happens short of
    success (including cancellation) the staging file is removed before
    control returns to the caller.
    """

    def __init__(self, fetcher: Fetcher, attempt_timeout: Optional[float] = None,
                 fsync: bool = True):
        self.fetcher = fetcher
        self.attempt_timeout = attempt_timeout
        self.fsync = fsync

    async def attempt(
        self,
        location: str,
        staging_path: Path,
        on_progress: Optional[OnProgress] = None,
    ) -> TransferOutcome:
        start_time = time.monotonic()
        outcome: Optional[TransferOutcome] = None
        bytes_written = 0

        def elapsed() -> float:
            return time.monotonic() - start_time

        try:
            try:
                f = open(staging_path, 'xb')
            except OSError as e:
                outcome = TransferOutcome.fatal(
                    f"Cannot create staging file {staging_path}: {e}",
                    ErrorKind.LOCAL_IO_ERROR, duration=elapsed()
                )
                return outcome

            with f:
                try:
                    async with asyncio.timeout(self.attempt_timeout):
                        async with self.fetcher.open(location) as stream:
                            async for chunk in stream.chunks:
                                self._write(f, chunk, staging_path)
                                bytes_written += len(chunk)
                                if on_progress is not None:
                                    on_progress(bytes_written, stream.total)
                            total = stream.total
                    if self.fsync:
                        self._sync(f, staging_path)
                except SourceError as e:
                    outcome = TransferOutcome.retryable(str(e), bytes_written=bytes_written,
                                                        duration=elapsed())
                    return outcome
                except TimeoutError:
                    outcome = TransferOutcome.retryable(
                        f"Attempt on {location} timed out after {self.attempt_timeout}s",
                        bytes_written=bytes_written, duration=elapsed()
                    )
                    return outcome
                except (InvalidLocationError, LocalIOError) as e:
                    outcome = TransferOutcome.fatal(str(e), e.kind, bytes_written=bytes_written,
                                                    duration=elapsed())
                    return outcome
                except Exception as e:
                    logger.exception("Unexpected error while fetching %s", location)
                    outcome = TransferOutcome.retryable(f"{type(e).__name__}: {e}",
                                                        bytes_written=bytes_written,
                                                        duration=elapsed())
                    return outcome

            if total is not None and bytes_written != total:
                outcome = TransferOutcome.retryable(
                    f"Short transfer from {location}: got {bytes_written} of {total} bytes",
                    bytes_written=bytes_written, duration=elapsed()
                )
                return outcome

            outcome = TransferOutcome.success(bytes_written, staging_path, duration=elapsed())
            return outcome
        finally:
            if outcome is None or not outcome.ok:
                staging_path.unlink(missing_ok=True)

    @staticmethod
    def _write(f, chunk: bytes, staging_path: Path) -> None:
        try:
            f.write(chunk)
        except OSError as e:
            raise LocalIOError(f"Cannot write staging file {staging_path}: {e}") from e

    @staticmethod
    def _sync(f, staging_path: Path) -> None:
        try:
            fsync_file(f)
        except OSError as e:
            raise LocalIOError(f"Cannot flush staging file {staging_path}: {e}") from e
