from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import RaffleSettings, VRFSettings
from ..db import Database
from ..errors import (
    InsufficientPayment,
    InvalidAddress,
    InvalidRandomWords,
    OnlyCoordinatorCanFulfill,
    PayoutTransferFailed,
    PlayerIndexOutOfRange,
    RoundNotCalculating,
    RoundNotOpen,
    UpkeepNotNeeded,
)
from ..models import Entry, RaffleRecord, RoundResult
from ..types import (
    NUM_WORDS,
    RaffleEntered,
    RaffleEvent,
    RaffleSnapshot,
    RaffleState,
    RandomnessRequest,
    RequestedRaffleWinner,
    WinnerPicked,
)
from .coordinator import RandomnessCoordinator
from .ledger import AccountLedger, normalise_address

Clock = Callable[[], int]
EventListener = Callable[[RaffleEvent], None]


def system_clock() -> int:
    return int(time.time())


class Raffle:
    """Round state machine: entries, upkeep and the randomness callback.

    Rounds cycle OPEN -> CALCULATING -> OPEN. ``perform_upkeep`` closes a round
    and asks the coordinator for one random word; the coordinator answers
    through ``raw_fulfill_random_words`` which pays the whole pool to the
    winner. Each public call is a single transaction: state is written before
    funds leave, and a failed payout rolls everything back.
    """

    def __init__(
        self,
        database: Database,
        coordinator: RandomnessCoordinator,
        settings: RaffleSettings,
        vrf: VRFSettings,
        ledger: Optional[AccountLedger] = None,
        clock: Clock = system_clock,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._db = database
        self._coordinator = coordinator
        self._ledger = ledger or AccountLedger()
        self._clock = clock
        self._logger = logger or logging.getLogger("raffle.core")
        self._listeners: List[EventListener] = []

        self._address = normalise_address(settings.address)
        self._entrance_fee = int(settings.entrance_fee)
        self._interval = int(settings.interval_seconds)
        self._coordinator_address = normalise_address(vrf.coordinator_address)
        self._key_hash = vrf.key_hash
        self._subscription_id = vrf.subscription_id
        self._request_confirmations = vrf.request_confirmations
        self._callback_gas_limit = vrf.callback_gas_limit

        with self._db.session_scope() as session:
            if session.get(RaffleRecord, 1) is None:
                session.add(
                    RaffleRecord(
                        id=1,
                        state=int(RaffleState.OPEN),
                        round_number=1,
                        last_timestamp=self._clock(),
                        recent_winner=None,
                    )
                )

    @property
    def address(self) -> str:
        return self._address

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------ #
    # Entry ledger
    # ------------------------------------------------------------------ #

    def enter(self, sender: str, payment: int) -> None:
        sender = normalise_address(sender)
        payment = int(payment)
        if sender in (self._address, self._coordinator_address):
            # Paying the pool from itself would count a player without adding funds.
            raise InvalidAddress(sender)
        with self._db.session_scope() as session:
            record = self._record(session)
            if payment < self._entrance_fee:
                raise InsufficientPayment(payment, self._entrance_fee)
            if RaffleState(record.state) != RaffleState.OPEN:
                raise RoundNotOpen()

            self._ledger.transfer(session, sender, self._address, payment)
            position = self._player_count(session, record.round_number)
            session.add(
                Entry(
                    round_number=record.round_number,
                    position=position,
                    player=sender,
                    amount=payment,
                )
            )
            session.flush()
            self._emit(session, RaffleEntered(player=sender))
        self._logger.info("%s entered round with %s wei", sender, payment)

    # ------------------------------------------------------------------ #
    # Upkeep
    # ------------------------------------------------------------------ #

    def check_upkeep(self) -> bool:
        with self._db.session_scope() as session:
            return self._upkeep_needed(session, self._record(session))

    def perform_upkeep(self) -> int:
        with self._db.session_scope() as session:
            record = self._record(session)
            if not self._upkeep_needed(session, record):
                raise UpkeepNotNeeded(
                    balance=self._ledger.balance_of(session, self._address),
                    players=self._player_count(session, record.round_number),
                    state=RaffleState(record.state),
                )

            record.state = int(RaffleState.CALCULATING)
            session.flush()

            request_id = self._coordinator.request_random_words(
                self._address,
                RandomnessRequest(
                    key_hash=self._key_hash,
                    subscription_id=self._subscription_id,
                    request_confirmations=self._request_confirmations,
                    callback_gas_limit=self._callback_gas_limit,
                    num_words=NUM_WORDS,
                    native_payment=False,
                ),
            )
            self._emit(session, RequestedRaffleWinner(request_id=request_id))
        self._logger.info("Round closed; randomness request %s issued", request_id)
        return request_id

    def _upkeep_needed(self, session: Session, record: RaffleRecord) -> bool:
        time_elapsed = (self._clock() - record.last_timestamp) >= self._interval
        is_open = RaffleState(record.state) == RaffleState.OPEN
        has_balance = self._ledger.balance_of(session, self._address) > 0
        has_players = self._player_count(session, record.round_number) > 0
        return time_elapsed and is_open and has_balance and has_players

    # ------------------------------------------------------------------ #
    # Fulfillment
    # ------------------------------------------------------------------ #

    def raw_fulfill_random_words(
        self, request_id: int, random_words: Sequence[int], caller: str
    ) -> None:
        if normalise_address(caller) != self._coordinator_address:
            raise OnlyCoordinatorCanFulfill(have=caller, want=self._coordinator_address)
        self._fulfill_random_words(int(request_id), [int(w) for w in random_words])

    def _fulfill_random_words(self, request_id: int, random_words: List[int]) -> None:
        if len(random_words) != NUM_WORDS:
            raise InvalidRandomWords(NUM_WORDS, len(random_words))

        with self._db.session_scope() as session:
            record = self._record(session)
            if RaffleState(record.state) != RaffleState.CALCULATING:
                raise RoundNotCalculating()

            players = self._players(session, record.round_number)
            winner = players[random_words[0] % len(players)]
            prize = self._ledger.balance_of(session, self._address)
            now = self._clock()

            session.add(
                RoundResult(
                    round_number=record.round_number,
                    winner=winner,
                    prize=prize,
                    player_count=len(players),
                    request_id=request_id,
                    random_word=str(random_words[0]),
                    settled_at=now,
                )
            )
            record.recent_winner = winner
            record.state = int(RaffleState.OPEN)
            record.round_number += 1
            record.last_timestamp = now
            session.flush()
            self._emit(session, WinnerPicked(winner=winner))

            if not self._ledger.send_value(session, self._address, winner, prize):
                self._logger.error("Payout of %s wei to %s failed; rolling back", prize, winner)
                raise PayoutTransferFailed(winner, prize)
        self._logger.info("Winner %s picked for request %s, paid %s wei", winner, request_id, prize)

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_entrance_fee(self) -> int:
        return self._entrance_fee

    def get_interval(self) -> int:
        return self._interval

    def get_raffle_state(self) -> RaffleState:
        with self._db.session_scope() as session:
            return RaffleState(self._record(session).state)

    def get_player(self, index: int) -> str:
        with self._db.session_scope() as session:
            players = self._players(session, self._record(session).round_number)
        if index < 0 or index >= len(players):
            raise PlayerIndexOutOfRange(index, len(players))
        return players[index]

    def get_number_of_players(self) -> int:
        with self._db.session_scope() as session:
            return self._player_count(session, self._record(session).round_number)

    def get_recent_winner(self) -> Optional[str]:
        with self._db.session_scope() as session:
            return self._record(session).recent_winner

    def get_last_timestamp(self) -> int:
        with self._db.session_scope() as session:
            return self._record(session).last_timestamp

    def get_balance(self) -> int:
        with self._db.session_scope() as session:
            return self._ledger.balance_of(session, self._address)

    def snapshot(self) -> RaffleSnapshot:
        with self._db.session_scope() as session:
            record = self._record(session)
            return RaffleSnapshot(
                state=RaffleState(record.state),
                round_number=record.round_number,
                entrance_fee=self._entrance_fee,
                interval_seconds=self._interval,
                balance=self._ledger.balance_of(session, self._address),
                player_count=self._player_count(session, record.round_number),
                last_timestamp=record.last_timestamp,
                recent_winner=record.recent_winner,
            )

    def list_results(self, limit: Optional[int] = None) -> List[dict]:
        with self._db.session_scope() as session:
            query = session.query(RoundResult).order_by(RoundResult.round_number.desc())
            if limit:
                query = query.limit(limit)
            return [result.to_dict() for result in query.all()]

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _record(session: Session) -> RaffleRecord:
        record = session.get(RaffleRecord, 1)
        if record is None:
            raise RuntimeError("Raffle state row missing; construct Raffle before use")
        return record

    @staticmethod
    def _player_count(session: Session, round_number: int) -> int:
        return int(
            session.query(func.count(Entry.id)).filter(Entry.round_number == round_number).scalar()
        )

    @staticmethod
    def _players(session: Session, round_number: int) -> List[str]:
        rows = (
            session.query(Entry.player)
            .filter(Entry.round_number == round_number)
            .order_by(Entry.position)
            .all()
        )
        return [row.player for row in rows]

    def _emit(self, session: Session, event: RaffleEvent) -> None:
        def dispatch() -> None:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    # The transaction has already committed.
                    self._logger.exception("Listener failed on %s", type(event).__name__)

        self._db.after_commit(session, dispatch)
