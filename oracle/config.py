from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


def _bool_from_env(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_from_env(value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    return int(value)


def _require_env(key: str) -> str:
    value = os.getenv(key)
    if value is None or value == "":
        raise RuntimeError(f"Missing required environment variable: {key}")
    return value


@dataclass(frozen=True)
class EntropySettings:
    source: str = "system"
    url: str = ""
    randomness_key: str = "randomness"
    round_key: str = "round"
    timeout_seconds: int = 10


@dataclass(frozen=True)
class OracleSettings:
    api_url: str
    oracle_token: str
    poll_interval_seconds: int = 10
    run_once: bool = False
    perform_upkeep: bool = True
    state_file: str = "oracle_state.json"
    request_timeout_seconds: int = 10
    entropy: EntropySettings = EntropySettings()

    def copy(self, **updates) -> "OracleSettings":
        return replace(self, **updates)


def load_from_environment() -> OracleSettings:
    api_url = _require_env("RAFFLE_API_URL")
    oracle_token = _require_env("ORACLE_API_KEY")

    entropy = EntropySettings(
        source=os.getenv("ENTROPY__SOURCE", "system"),
        url=os.getenv("ENTROPY__URL", ""),
        randomness_key=os.getenv("ENTROPY__RANDOMNESS_KEY", "randomness"),
        round_key=os.getenv("ENTROPY__ROUND_KEY", "round"),
        timeout_seconds=_int_from_env(os.getenv("ENTROPY__TIMEOUT_SECONDS"), 10),
    )

    return OracleSettings(
        api_url=api_url.rstrip("/"),
        oracle_token=oracle_token,
        poll_interval_seconds=_int_from_env(os.getenv("POLL_INTERVAL_SECONDS"), 10),
        run_once=_bool_from_env(os.getenv("RUN_ONCE"), False),
        perform_upkeep=_bool_from_env(os.getenv("PERFORM_UPKEEP"), True),
        state_file=os.getenv("STATE_FILE", "oracle_state.json"),
        request_timeout_seconds=_int_from_env(os.getenv("REQUEST_TIMEOUT_SECONDS"), 10),
        entropy=entropy,
    )


@lru_cache(maxsize=1)
def load_config(dotenv_path: Optional[str] = None) -> OracleSettings:
    if dotenv_path:
        load_dotenv(dotenv_path)
    else:
        default_path = pathlib.Path(".env")
        if default_path.exists():
            load_dotenv(default_path)
    return load_from_environment()
