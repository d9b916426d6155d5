from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class PendingRequest:
    request_id: int
    consumer: str
    num_words: int


@dataclass(frozen=True)
class Fulfillment:
    request_id: int
    random_words: Sequence[int]
    recent_winner: str
    round_number: int
