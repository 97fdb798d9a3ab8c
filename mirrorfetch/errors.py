"""Error taxonomy for the download engine."""

from enum import Enum


class ErrorKind(str, Enum):
    """Why an attempt or a job failed."""

    SOURCE_UNAVAILABLE = "source_unavailable"
    VERIFICATION_FAILED = "verification_failed"
    SOURCES_EXHAUSTED = "sources_exhausted"
    LOCAL_IO_ERROR = "local_io_error"
    TARGET_COLLISION = "target_collision"
    INVALID_LOCATION = "invalid_location"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"

    @property
    def retryable(self) -> bool:
        """Whether another mirror may still succeed after this error."""
        return self in (ErrorKind.SOURCE_UNAVAILABLE, ErrorKind.VERIFICATION_FAILED)


class MirrorFetchError(Exception):
    """Base class for mirrorfetch errors."""

    kind = ErrorKind.INTERNAL_ERROR


class SourceError(MirrorFetchError):
    """A mirror could not deliver the file (network, HTTP status, short read)."""

    kind = ErrorKind.SOURCE_UNAVAILABLE


class InvalidLocationError(MirrorFetchError):
    """A location is malformed or uses an unsupported scheme."""

    kind = ErrorKind.INVALID_LOCATION


class LocalIOError(MirrorFetchError):
    """Writing staged data or committing it failed on the local side."""

    kind = ErrorKind.LOCAL_IO_ERROR


class TargetCollisionError(MirrorFetchError):
    """The final target already exists and the job may not overwrite it."""

    kind = ErrorKind.TARGET_COLLISION
