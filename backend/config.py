from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from web3 import Web3

DEFAULT_RAFFLE_ADDRESS = "0x" + "0" * 39 + "1"
DEFAULT_COORDINATOR_ADDRESS = "0x" + "0" * 39 + "2"
# Sepolia 500 gwei key hash; any 32 byte value works against the local coordinator.
DEFAULT_KEY_HASH = "0x787d74caea10b2b357790d5b5247c2f63d1d91572a9846f780606e4d953677ae"


@dataclass(frozen=True)
class FlaskSettings:
    secret_key: str = "raffle-dev-secret"
    debug: bool = True


@dataclass(frozen=True)
class RaffleSettings:
    entrance_fee: int = Web3.to_wei(Decimal("0.01"), "ether")
    interval_seconds: int = 30
    address: str = DEFAULT_RAFFLE_ADDRESS


@dataclass(frozen=True)
class VRFSettings:
    coordinator_address: str = DEFAULT_COORDINATOR_ADDRESS
    key_hash: str = DEFAULT_KEY_HASH
    subscription_id: int = 0
    callback_gas_limit: int = 500000
    request_confirmations: int = 3


@dataclass(frozen=True)
class AppSettings:
    flask: FlaskSettings = field(default_factory=FlaskSettings)
    raffle: RaffleSettings = field(default_factory=RaffleSettings)
    vrf: VRFSettings = field(default_factory=VRFSettings)
    database_url: str = "sqlite:///raffle.db"
    admin_api_key: Optional[str] = None
    oracle_api_key: Optional[str] = None


def _int_from_env(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return int(value)


def _ether_from_env(key: str, default: str) -> int:
    value = os.getenv(key) or default
    return Web3.to_wei(Decimal(value), "ether")


def _address_from_env(key: str, default: str) -> str:
    value = os.getenv(key) or default
    if not Web3.is_address(value):
        raise RuntimeError(f"Invalid address in environment variable {key}: {value}")
    return Web3.to_checksum_address(value)


@lru_cache(maxsize=1)
def load_settings(dotenv_path: Optional[str] = None) -> AppSettings:
    if dotenv_path:
        load_dotenv(dotenv_path)
    else:
        load_dotenv()

    flask_settings = FlaskSettings(
        secret_key=os.getenv("FLASK_SECRET_KEY", "raffle-dev-secret"),
        debug=os.getenv("FLASK_DEBUG", "1") == "1",
    )

    raffle_settings = RaffleSettings(
        entrance_fee=_ether_from_env("RAFFLE_ENTRANCE_FEE", "0.01"),
        interval_seconds=_int_from_env("RAFFLE_INTERVAL_SECONDS", 30),
        address=_address_from_env("RAFFLE_ADDRESS", DEFAULT_RAFFLE_ADDRESS),
    )

    vrf_settings = VRFSettings(
        coordinator_address=_address_from_env("VRF__COORDINATOR_ADDRESS", DEFAULT_COORDINATOR_ADDRESS),
        key_hash=os.getenv("VRF__KEY_HASH", DEFAULT_KEY_HASH),
        subscription_id=_int_from_env("VRF__SUBSCRIPTION_ID", 0),
        callback_gas_limit=_int_from_env("VRF__CALLBACK_GAS_LIMIT", 500000),
        request_confirmations=_int_from_env("VRF__REQUEST_CONFIRMATIONS", 3),
    )

    return AppSettings(
        flask=flask_settings,
        raffle=raffle_settings,
        vrf=vrf_settings,
        database_url=os.getenv("DATABASE_URL", "sqlite:///raffle.db"),
        admin_api_key=os.getenv("ADMIN_API_KEY"),
        oracle_api_key=os.getenv("ORACLE_API_KEY"),
    )
