"""Download engine: mirror selection, transfer, verification and scheduling."""

from .gate import commit, verify_staged
from .job import DownloadJob, JobContext, JobPhase, JobResult
from .manager import BatchResult, DownloadManager, display_batch_summary, run_batch
from .selector import MirrorSelector, OrderedSelector, RandomSelector
from .worker import OutcomeStatus, TransferOutcome, TransferWorker

__all__ = [
    'BatchResult',
    'DownloadJob',
    'DownloadManager',
    'JobContext',
    'JobPhase',
    'JobResult',
    'MirrorSelector',
    'OrderedSelector',
    'OutcomeStatus',
    'RandomSelector',
    'TransferOutcome',
    'TransferWorker',
    'commit',
    'display_batch_summary',
    'run_batch',
    'verify_staged',
]
