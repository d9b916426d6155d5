from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import requests

from .config import OracleSettings
from .types import Fulfillment, PendingRequest


class RaffleApiError(RuntimeError):
    def __init__(self, status_code: int, payload: Dict[str, Any]) -> None:
        self.status_code = status_code
        self.payload = payload
        self.code = payload.get("error")
        super().__init__(f"Raffle API returned {status_code}: {payload}")


class RaffleApiClient:
    """Wrapper around the raffle backend's upkeep and oracle endpoints."""

    def __init__(self, settings: OracleSettings, session: Optional[requests.Session] = None) -> None:
        self._base_url = settings.api_url.rstrip("/")
        self._timeout = settings.request_timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update({"X-Oracle-Token": settings.oracle_token})

    async def check_upkeep(self) -> bool:
        data = await asyncio.to_thread(self._request, "GET", "/raffle/upkeep")
        return bool(data["upkeep_needed"])

    async def perform_upkeep(self) -> int:
        data = await asyncio.to_thread(self._request, "POST", "/raffle/upkeep")
        return int(data["request_id"])

    async def pending_requests(self) -> List[PendingRequest]:
        data = await asyncio.to_thread(self._request, "GET", "/oracle/requests")
        return [
            PendingRequest(
                request_id=int(item["request_id"]),
                consumer=str(item["consumer"]),
                num_words=int(item["num_words"]),
            )
            for item in data
        ]

    async def fulfill(self, request_id: int, random_words: Sequence[int]) -> Fulfillment:
        words = [int(w) for w in random_words]
        data = await asyncio.to_thread(
            self._request,
            "POST",
            f"/oracle/requests/{int(request_id)}/fulfill",
            {"random_words": words},
        )
        return Fulfillment(
            request_id=int(data["request_id"]),
            random_words=tuple(words),
            recent_winner=data.get("recent_winner"),
            round_number=int(data["round_number"]),
        )

    def close(self) -> None:
        self._session.close()

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        resp = self._session.request(
            method, f"{self._base_url}{path}", json=payload, timeout=self._timeout
        )
        try:
            data = resp.json()
        except ValueError:
            data = {"error": resp.text}
        if resp.status_code >= 400:
            raise RaffleApiError(resp.status_code, data if isinstance(data, dict) else {"error": data})
        return data
