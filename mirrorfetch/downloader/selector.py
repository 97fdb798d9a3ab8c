"""Mirror selection policies."""

import random
from abc import ABC, abstractmethod
from typing import AbstractSet, List, Optional, Sequence, Union


class MirrorSelector(ABC):
    """Picks the next location to try for a job."""

    @abstractmethod
    def select(self, sources: Sequence[str], tried: AbstractSet[str]) -> Optional[str]:
        """Return an untried location, or None when every source was tried."""

    @staticmethod
    def remaining(sources: Sequence[str], tried: AbstractSet[str]) -> List[str]:
        """Distinct untried sources, in list order."""
        return [s for s in dict.fromkeys(sources) if s not in tried]


class RandomSelector(MirrorSelector):
    """Uniform random choice among untried mirrors, spreading load across them."""

    def __init__(self, rng: Union[random.Random, int, None] = None):
        if isinstance(rng, random.Random):
            self.rng = rng
        else:
            self.rng = random.Random(rng)

    def select(self, sources: Sequence[str], tried: AbstractSet[str]) -> Optional[str]:
        candidates = self.remaining(sources, tried)
        if not candidates:
            return None
        return self.rng.choice(candidates)


class OrderedSelector(MirrorSelector):
    """First untried mirror in list order (primary/fallback semantics)."""

    def select(self, sources: Sequence[str], tried: AbstractSet[str]) -> Optional[str]:
        candidates = self.remaining(sources, tried)
        return candidates[0] if candidates else None
