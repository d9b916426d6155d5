from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import requests

from .base import EntropySource, RandomWord


@dataclass(frozen=True)
class HttpBeaconSourceConfig:
    """Configuration describing how to parse the beacon's JSON payload.

    Defaults match the drand ``/public/latest`` endpoint.
    """

    url: str
    randomness_key: str = "randomness"
    round_key: str = "round"
    timeout_seconds: int = 10


class HttpBeaconSource(EntropySource):
    """Fetch random words from a public randomness beacon over HTTP.

    A beacon round is handed out at most once; asking again before the beacon
    publishes a new round raises `RuntimeError`.
    """

    def __init__(self, config: HttpBeaconSourceConfig) -> None:
        self._config = config
        self._last_round: Optional[int] = None

    async def next_word(self) -> RandomWord:
        response_json = await asyncio.to_thread(
            self._get_json, self._config.url, self._config.timeout_seconds
        )
        word = self._parse_payload(response_json)
        if word.round is not None and self._last_round is not None and word.round <= self._last_round:
            raise RuntimeError(f"Beacon round {word.round} already used; waiting for a new one")
        self._last_round = word.round
        return word

    @staticmethod
    def _get_json(url: str, timeout_seconds: int) -> Mapping[str, Any]:
        resp = requests.get(url, timeout=timeout_seconds)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, Mapping):
            raise ValueError("Beacon returned non-object payload")
        return data

    def _parse_payload(self, payload: Mapping[str, Any]) -> RandomWord:
        cfg = self._config
        try:
            raw_randomness = payload[cfg.randomness_key]
        except KeyError as exc:
            raise ValueError(f"Missing randomness field: {cfg.randomness_key}") from exc

        value = self._parse_randomness(raw_randomness)
        round_number = self._parse_round(payload.get(cfg.round_key))
        return RandomWord(value=value, origin=cfg.url, round=round_number)

    @staticmethod
    def _parse_randomness(raw: Any) -> int:
        if not isinstance(raw, str):
            raise ValueError("randomness field must be a hex string")
        text = raw[2:] if raw.startswith(("0x", "0X")) else raw
        if len(text) == 0 or len(text) > 64:
            raise ValueError("randomness must be 1 to 32 bytes of hex")
        try:
            return int(text, 16)
        except ValueError as exc:
            raise ValueError("randomness is not valid hex") from exc

    @staticmethod
    def _parse_round(raw: Any) -> Optional[int]:
        if raw is None:
            return None
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValueError("round field must be an integer")
        return raw
