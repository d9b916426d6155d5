from .base import EntropySource, RandomWord
from .http_beacon import HttpBeaconSource, HttpBeaconSourceConfig
from .system import SystemEntropySource

__all__ = [
    "EntropySource",
    "RandomWord",
    "HttpBeaconSource",
    "HttpBeaconSourceConfig",
    "SystemEntropySource",
]
