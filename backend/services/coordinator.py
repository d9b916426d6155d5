from __future__ import annotations

import abc
import logging
from typing import Dict, List, Optional, Protocol, Sequence

from ..db import Database
from ..errors import InvalidRandomWords, NonexistentRequest
from ..models import RandomnessRequestRecord, utcnow
from ..types import RandomnessRequest
from .ledger import normalise_address


class RandomnessConsumer(Protocol):
    @property
    def address(self) -> str:
        ...

    def raw_fulfill_random_words(
        self, request_id: int, random_words: Sequence[int], caller: str
    ) -> None:
        ...


class RandomnessCoordinator(abc.ABC):
    """Outbound side of the randomness oracle."""

    @property
    @abc.abstractmethod
    def address(self) -> str:
        """Identity the coordinator uses when it calls consumers back."""

    @abc.abstractmethod
    def request_random_words(self, consumer: str, request: RandomnessRequest) -> int:
        """Register a request and return its id.

        The answer arrives later through the consumer's
        ``raw_fulfill_random_words``.
        """


class LocalVRFCoordinator(RandomnessCoordinator):
    """Persistent coordinator that an off-chain oracle node drives over HTTP.

    Requests are stored in the same database as the raffle; issuing one joins
    the caller's transaction, and fulfilling one opens a transaction that the
    consumer callback joins. A request is marked fulfilled only when the
    consumer accepts the callback, so a failed callback can be replayed.
    """

    def __init__(
        self,
        database: Database,
        address: str,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._db = database
        self._address = normalise_address(address)
        self._consumers: Dict[str, RandomnessConsumer] = {}
        self._logger = logger or logging.getLogger("raffle.coordinator")

    @property
    def address(self) -> str:
        return self._address

    def add_consumer(self, consumer: RandomnessConsumer) -> None:
        self._consumers[normalise_address(consumer.address)] = consumer

    def request_random_words(self, consumer: str, request: RandomnessRequest) -> int:
        consumer = normalise_address(consumer)
        if consumer not in self._consumers:
            raise ValueError(f"{consumer} is not a registered consumer")
        with self._db.session_scope() as session:
            record = RandomnessRequestRecord(
                consumer=consumer,
                key_hash=request.key_hash,
                subscription_id=request.subscription_id,
                request_confirmations=request.request_confirmations,
                callback_gas_limit=request.callback_gas_limit,
                num_words=request.num_words,
                native_payment=request.native_payment,
                fulfilled=False,
            )
            session.add(record)
            session.flush()
            request_id = int(record.id)
        self._logger.info("Randomness request %s registered for %s", request_id, consumer)
        return request_id

    def pending_requests(self) -> List[dict]:
        with self._db.session_scope() as session:
            records = (
                session.query(RandomnessRequestRecord)
                .filter(RandomnessRequestRecord.fulfilled.is_(False))
                .order_by(RandomnessRequestRecord.id)
                .all()
            )
            return [record.to_dict() for record in records]

    def fulfill_random_words(self, request_id: int, random_words: Sequence[int]) -> None:
        words = [int(w) for w in random_words]
        with self._db.session_scope() as session:
            record = session.get(RandomnessRequestRecord, int(request_id))
            if record is None or record.fulfilled:
                raise NonexistentRequest(int(request_id))
            if len(words) != record.num_words:
                raise InvalidRandomWords(record.num_words, len(words))

            consumer = self._consumers.get(record.consumer)
            if consumer is None:
                raise NonexistentRequest(int(request_id))

            consumer.raw_fulfill_random_words(record.id, words, caller=self._address)

            record.fulfilled = True
            record.set_random_words(words)
            record.fulfilled_at = utcnow()
        self._logger.info("Randomness request %s fulfilled", request_id)
