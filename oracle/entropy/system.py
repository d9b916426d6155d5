from __future__ import annotations

import secrets

from .base import EntropySource, RandomWord


class SystemEntropySource(EntropySource):
    """Random words from the operating system CSPRNG."""

    async def next_word(self) -> RandomWord:
        return RandomWord(value=secrets.randbits(256), origin="system")
