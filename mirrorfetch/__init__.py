"""mirrorfetch - concurrent, verified file downloads from mirrored sources."""

__version__ = "0.1.0"

from .download import Descriptor, CollisionPolicy, file_name_from_url  # noqa: E402
from .downloader import (  # noqa: E402
    BatchResult, DownloadManager, JobResult, run_batch
)
from .errors import ErrorKind  # noqa: E402

__all__ = [
    '__version__',
    'BatchResult',
    'CollisionPolicy',
    'Descriptor',
    'DownloadManager',
    'ErrorKind',
    'JobResult',
    'file_name_from_url',
    'run_batch',
]
