"""Verification of staged downloads and their commit to the final path."""

import asyncio
import errno
import logging
import os
import shutil
import uuid
from pathlib import Path

from ..download import CollisionPolicy
from ..errors import LocalIOError, TargetCollisionError
from ..utils import copy_exclusive, ensure_directory
from ..verify import Verifier

logger = logging.getLogger(__name__)

# errno values meaning "hard links are not an option here"
_NO_LINK_ERRNOS = {errno.EXDEV, errno.EPERM, errno.EMLINK, errno.ENOTSUP, errno.EOPNOTSUPP}


async def verify_staged(staged_path: Path, verifier: Verifier) -> bool:
    """Run `verifier` on the staged file in a worker thread.

    A verifier that raises is treated as a failed verification.
    """
    try:
        return bool(await asyncio.to_thread(verifier, staged_path))
    except Exception:
        logger.exception("Verifier raised for %s", staged_path)
        return False


def commit(staged_path: Path, final_path: Path, policy: CollisionPolicy) -> Path:
    """Move verified staged data to `final_path`.

    The existence check happens here, as part of the move itself, so a
    file created by someone else after the job started is still detected.
    Raises TargetCollisionError or LocalIOError.
    """
    try:
        ensure_directory(final_path.parent)
    except OSError as e:
        raise LocalIOError(f"Cannot create {final_path.parent}: {e}") from e

    if policy is CollisionPolicy.OVERWRITE:
        _commit_overwrite(staged_path, final_path)
    else:
        _commit_exclusive(staged_path, final_path)

    return final_path


def _temp_path(final_path: Path) -> Path:
    return final_path.with_name(f".{final_path.name}.{uuid.uuid4().hex}.tmp")


def _discard(path: Path) -> None:
    # Leftover staging or temp files are logged, never turned into job failures
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Cannot remove %s: %s", path, e)


def _commit_exclusive(staged_path: Path, final_path: Path) -> None:
    try:
        os.link(staged_path, final_path)
    except FileExistsError as e:
        raise TargetCollisionError(f"{final_path} already exists") from e
    except OSError as e:
        if e.errno not in _NO_LINK_ERRNOS:
            raise LocalIOError(f"Cannot commit {final_path}: {e}") from e
        logger.debug("Hard link unavailable for %s (%s), copying", final_path, e)
        _commit_exclusive_copy(staged_path, final_path)

    _discard(staged_path)


def _commit_exclusive_copy(staged_path: Path, final_path: Path) -> None:
    """Copy next to the target, then link it into place without clobbering.

    Only when the target's filesystem has no hard links at all is the data
    copied straight to the final path with an exclusive create.
    """
    temp_path = _temp_path(final_path)
    try:
        shutil.copyfile(staged_path, temp_path)
        try:
            os.link(temp_path, final_path)
        except OSError as e:
            if isinstance(e, FileExistsError) or e.errno not in _NO_LINK_ERRNOS:
                raise
            copy_exclusive(temp_path, final_path)
    except FileExistsError as e:
        raise TargetCollisionError(f"{final_path} already exists") from e
    except OSError as e:
        raise LocalIOError(f"Cannot commit {final_path}: {e}") from e
    finally:
        _discard(temp_path)


def _commit_overwrite(staged_path: Path, final_path: Path) -> None:
    try:
        os.replace(staged_path, final_path)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise LocalIOError(f"Cannot commit {final_path}: {e}") from e

    # Cross-volume: copy next to the target, then rename atomically
    temp_path = _temp_path(final_path)
    try:
        shutil.copyfile(staged_path, temp_path)
        os.replace(temp_path, final_path)
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        raise LocalIOError(f"Cannot commit {final_path}: {e}") from e

    _discard(staged_path)
