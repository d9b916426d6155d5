from __future__ import annotations

import asyncio
import json
import logging
import pathlib
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, Set

from .config import OracleSettings
from .entropy import EntropySource
from .raffle_client import RaffleApiError
from .types import Fulfillment, PendingRequest

UPKEEP_NOT_NEEDED = "Raffle__UpkeepNotNeeded"
TRANSFER_FAILED = "Raffle__TransferFailed"


class RaffleClientProtocol(Protocol):
    async def check_upkeep(self) -> bool:
        ...

    async def perform_upkeep(self) -> int:
        ...

    async def pending_requests(self) -> List[PendingRequest]:
        ...

    async def fulfill(self, request_id: int, random_words: Sequence[int]) -> Fulfillment:
        ...


@dataclass
class KeeperResult:
    upkeep_request_id: Optional[int] = None
    fulfillments: List[Fulfillment] = field(default_factory=list)


class KeeperStateStore:
    """Small JSON file remembering what the keeper already did.

    Requests whose payout failed are parked here; they are not retried until an
    operator replays them explicitly.
    """

    def __init__(self, path: str) -> None:
        self._path = pathlib.Path(path)

    def _load(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        self._path.write_text(json.dumps(data), encoding="utf-8")

    def load_last_request(self) -> Optional[int]:
        return self._load().get("last_request_id")

    def save_last_request(self, request_id: int) -> None:
        data = self._load()
        data["last_request_id"] = request_id
        self._save(data)

    def load_parked(self) -> Set[int]:
        return {int(r) for r in self._load().get("parked_request_ids", [])}

    def park(self, request_id: int) -> None:
        data = self._load()
        parked = set(data.get("parked_request_ids", []))
        parked.add(request_id)
        data["parked_request_ids"] = sorted(parked)
        self._save(data)

    def release(self, request_id: int) -> None:
        data = self._load()
        data["parked_request_ids"] = sorted(set(data.get("parked_request_ids", [])) - {request_id})
        self._save(data)


class KeeperScheduler:
    """Drives the raffle: performs upkeep when due and answers randomness requests."""

    def __init__(
        self,
        settings: OracleSettings,
        entropy: EntropySource,
        client: RaffleClientProtocol,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings
        self._entropy = entropy
        self._client = client
        self._state = KeeperStateStore(settings.state_file)
        self._last_request_id = self._state.load_last_request()
        self._logger = logger or logging.getLogger("raffle.oracle")

    def replay(self, request_id: int) -> None:
        self._state.release(request_id)
        self._logger.info("Request %s released for another fulfillment attempt", request_id)

    async def run_forever(self) -> None:
        interval = self._settings.poll_interval_seconds
        self._logger.info("Keeper loop started; poll interval=%s", interval)
        while True:
            try:
                await self._run_iteration()
            except Exception as exc:
                self._logger.exception("Keeper iteration failed: %s", exc)
            await asyncio.sleep(interval)

    async def run_once(self) -> KeeperResult:
        try:
            return await self._run_iteration()
        finally:
            await self._entropy.close()

    async def _run_iteration(self) -> KeeperResult:
        result = KeeperResult()
        if self._settings.perform_upkeep:
            result.upkeep_request_id = await self._attempt_upkeep()

        parked = self._state.load_parked()
        for pending in await self._client.pending_requests():
            if pending.request_id in parked:
                self._logger.debug("Request %s is parked; skipping.", pending.request_id)
                continue
            if pending.request_id == self._last_request_id:
                # Already answered; the API has not caught up yet.
                self._logger.debug("Request %s already fulfilled; skipping.", pending.request_id)
                continue
            fulfillment = await self._attempt_fulfillment(pending)
            if fulfillment is not None:
                result.fulfillments.append(fulfillment)
        return result

    async def _attempt_upkeep(self) -> Optional[int]:
        if not await self._client.check_upkeep():
            self._logger.debug("Upkeep not needed.")
            return None
        try:
            request_id = await self._client.perform_upkeep()
        except RaffleApiError as exc:
            if exc.code != UPKEEP_NOT_NEEDED:
                raise
            # Another keeper got there between the check and the call.
            self._logger.info("Upkeep rejected as no longer needed: %s", exc.payload)
            return None
        self._logger.info("Upkeep performed; randomness request %s issued", request_id)
        return request_id

    async def _attempt_fulfillment(self, pending: PendingRequest) -> Optional[Fulfillment]:
        words = []
        for _ in range(pending.num_words):
            word = await self._entropy.next_word()
            words.append(word.value)

        self._logger.info("Fulfilling request %s for %s", pending.request_id, pending.consumer)
        try:
            fulfillment = await self._client.fulfill(pending.request_id, words)
        except RaffleApiError as exc:
            if exc.code != TRANSFER_FAILED:
                raise
            self._logger.error(
                "Payout failed for request %s; parked until replayed: %s",
                pending.request_id,
                exc.payload,
            )
            self._state.park(pending.request_id)
            return None

        self._state.save_last_request(pending.request_id)
        self._last_request_id = pending.request_id
        self._logger.info(
            "Request %s fulfilled; winner %s", pending.request_id, fulfillment.recent_winner
        )
        return fulfillment
