from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Optional

UINT256_MAX = 2**256 - 1


@dataclass(frozen=True)
class RandomWord:
    """A single uint256 random value plus where it came from."""

    value: int
    origin: str
    round: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0 <= self.value <= UINT256_MAX:
            raise ValueError("Random word must fit in 256 bits")


class EntropySource(abc.ABC):
    """Abstract provider of unpredictable random words."""

    @abc.abstractmethod
    async def next_word(self) -> RandomWord:
        """Return a fresh random word.

        Implementations should raise `RuntimeError` or `ValueError` if the
        upstream source is unavailable or returns malformed data.
        """

    async def close(self) -> None:
        """Optional hook for sources that require cleanup."""
        return None
