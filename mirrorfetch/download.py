"""Descriptor of a single file download."""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

from . import verify as verifiers
from .progress import ProgressSink
from .utils import file_name_from_url
from .verify import Verifier

PathLike = Union[str, Path]


class CollisionPolicy(str, Enum):
    """What to do when the target file already exists at commit time."""

    FAIL_IF_EXISTS = "fail_if_exists"
    OVERWRITE = "overwrite"


@dataclass(frozen=True)
class Descriptor:
    """A file to download from one of several equivalent mirrors.

    `sources` are tried in random order until one delivers content that
    passes `verify`. `target_name` may be absolute or relative to the
    download directory (or to `output_dir` when set).
    """

    sources: Tuple[str, ...]
    target_name: Path
    verify: Verifier = field(default_factory=verifiers.noop, compare=False)
    progress: Optional[ProgressSink] = field(default=None, compare=False)
    collision_policy: CollisionPolicy = CollisionPolicy.FAIL_IF_EXISTS
    output_dir: Optional[Path] = None

    def __post_init__(self):
        sources = (self.sources,) if isinstance(self.sources, str) else tuple(self.sources)
        if not sources or not all(sources):
            raise ValueError("A download needs at least one non-empty source")
        if not str(self.target_name) or str(self.target_name) == '.':
            raise ValueError(f"Cannot determine a file name for {sources[0]!r}")

        object.__setattr__(self, 'sources', sources)
        object.__setattr__(self, 'target_name', Path(self.target_name))
        object.__setattr__(self, 'collision_policy', CollisionPolicy(self.collision_policy))
        if self.output_dir is not None:
            object.__setattr__(self, 'output_dir', Path(self.output_dir))

    @classmethod
    def new(cls, url: str, file_name: Optional[PathLike] = None) -> "Descriptor":
        """Download from a single url, naming the file after its last path segment."""
        return cls.new_mirrored([url], file_name)

    @classmethod
    def new_mirrored(
        cls, urls: Sequence[str], file_name: Optional[PathLike] = None
    ) -> "Descriptor":
        """Download from a list of mirrors, named after the first one."""
        urls = tuple(urls)
        if file_name is None:
            file_name = file_name_from_url(urls[0]) if urls else ''
        return cls(sources=urls, target_name=Path(file_name) if file_name else '')

    @classmethod
    def new_with_output(
        cls, url: str, output_dir: PathLike, file_name: Optional[PathLike] = None
    ) -> "Descriptor":
        """Download from a single url into `output_dir` instead of the default folder."""
        return dataclasses.replace(cls.new(url, file_name), output_dir=Path(output_dir))

    def with_file_name(self, file_name: PathLike) -> "Descriptor":
        return dataclasses.replace(self, target_name=Path(file_name))

    def with_progress(self, progress: ProgressSink) -> "Descriptor":
        return dataclasses.replace(self, progress=progress)

    def with_verify(self, verify: Verifier) -> "Descriptor":
        return dataclasses.replace(self, verify=verify)

    def with_collision_policy(self, policy: CollisionPolicy) -> "Descriptor":
        return dataclasses.replace(self, collision_policy=policy)

    def final_path(self, download_dir: PathLike) -> Path:
        """Where the verified file ends up."""
        base = self.output_dir if self.output_dir is not None else Path(download_dir)
        return base / self.target_name

    @property
    def display_name(self) -> str:
        return self.target_name.name or str(self.target_name)
