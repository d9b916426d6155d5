from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union

NUM_WORDS = 1


class RaffleState(IntEnum):
    OPEN = 0
    CALCULATING = 1


@dataclass(frozen=True)
class RandomnessRequest:
    key_hash: str
    subscription_id: int
    request_confirmations: int
    callback_gas_limit: int
    num_words: int = NUM_WORDS
    native_payment: bool = False


@dataclass(frozen=True)
class RaffleSnapshot:
    state: RaffleState
    round_number: int
    entrance_fee: int
    interval_seconds: int
    balance: int
    player_count: int
    last_timestamp: int
    recent_winner: Optional[str]


@dataclass(frozen=True)
class RaffleEntered:
    player: str


@dataclass(frozen=True)
class RequestedRaffleWinner:
    request_id: int


@dataclass(frozen=True)
class WinnerPicked:
    winner: str


RaffleEvent = Union[RaffleEntered, RequestedRaffleWinner, WinnerPicked]
