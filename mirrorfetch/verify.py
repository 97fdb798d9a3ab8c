"""Verification routines for downloaded files.

A verifier is any callable taking the path of a fully staged file and
returning True when the content is acceptable.
"""

from pathlib import Path
from typing import Callable

from .utils import calculate_sha256

Verifier = Callable[[Path], bool]


def noop() -> Verifier:
    """Accept every download."""
    def _verify(path: Path) -> bool:
        return True
    return _verify


def sha256(expected: str) -> Verifier:
    """Accept a download whose SHA256 digest matches `expected` (hex)."""
    expected = expected.strip().lower()

    def _verify(path: Path) -> bool:
        return calculate_sha256(path) == expected
    return _verify


def size(expected: int) -> Verifier:
    """Accept a download of exactly `expected` bytes."""
    def _verify(path: Path) -> bool:
        return path.stat().st_size == expected
    return _verify


def all_of(*verifiers: Verifier) -> Verifier:
    """Accept a download only if every verifier accepts it."""
    def _verify(path: Path) -> bool:
        return all(verifier(path) for verifier in verifiers)
    return _verify
