from __future__ import annotations

import datetime as dt
import json
from typing import List

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class WeiAmount(TypeDecorator):
    """Unbounded non-negative integer stored as decimal text.

    Wei amounts overflow 64 bit integer columns after ~9.2 ether.
    """

    impl = String(80)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class RaffleRecord(Base):
    __tablename__ = "raffle_state"

    id = Column(Integer, primary_key=True, default=1)
    state = Column(Integer, nullable=False, default=0)
    round_number = Column(Integer, nullable=False, default=1)
    last_timestamp = Column(Integer, nullable=False)
    recent_winner = Column(String(42), nullable=True)


class Entry(Base):
    __tablename__ = "raffle_entries"
    __table_args__ = (UniqueConstraint("round_number", "position"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_number = Column(Integer, nullable=False, index=True)
    position = Column(Integer, nullable=False)
    player = Column(String(42), nullable=False)
    amount = Column(WeiAmount, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class RoundResult(Base):
    __tablename__ = "round_results"

    round_number = Column(Integer, primary_key=True)
    winner = Column(String(42), nullable=False)
    prize = Column(WeiAmount, nullable=False)
    player_count = Column(Integer, nullable=False)
    request_id = Column(Integer, nullable=False)
    random_word = Column(Text, nullable=False)
    settled_at = Column(Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "round_number": self.round_number,
            "winner": self.winner,
            "prize_wei": str(self.prize),
            "player_count": self.player_count,
            "request_id": self.request_id,
            "random_word": self.random_word,
            "settled_at": self.settled_at,
        }


class Account(Base):
    __tablename__ = "accounts"

    address = Column(String(42), primary_key=True)
    balance = Column(WeiAmount, nullable=False, default=0)
    payable = Column(Boolean, nullable=False, default=True)
    nonce = Column(Integer, nullable=False, default=0)


class RandomnessRequestRecord(Base):
    __tablename__ = "randomness_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    consumer = Column(String(42), nullable=False)
    key_hash = Column(String(66), nullable=False)
    subscription_id = Column(Integer, nullable=False)
    request_confirmations = Column(Integer, nullable=False)
    callback_gas_limit = Column(Integer, nullable=False)
    num_words = Column(Integer, nullable=False)
    native_payment = Column(Boolean, nullable=False, default=False)
    fulfilled = Column(Boolean, nullable=False, default=False)
    random_words = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    fulfilled_at = Column(DateTime(timezone=True), nullable=True)

    def set_random_words(self, words: List[int]) -> None:
        # uint256 values do not survive a round trip through JSON numbers in every client.
        self.random_words = json.dumps([str(w) for w in words])

    def get_random_words(self) -> List[int]:
        if not self.random_words:
            return []
        return [int(w) for w in json.loads(self.random_words)]

    def to_dict(self) -> dict:
        return {
            "request_id": self.id,
            "consumer": self.consumer,
            "key_hash": self.key_hash,
            "subscription_id": self.subscription_id,
            "request_confirmations": self.request_confirmations,
            "callback_gas_limit": self.callback_gas_limit,
            "num_words": self.num_words,
            "native_payment": self.native_payment,
            "fulfilled": self.fulfilled,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
