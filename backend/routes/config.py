from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify
from web3 import Web3

from ..extensions import get_services
from ..types import NUM_WORDS

bp = Blueprint("config", __name__)


def _public_config() -> Dict[str, Any]:
    settings = get_services().settings
    return {
        "raffle_address": settings.raffle.address,
        "entrance_fee_wei": str(settings.raffle.entrance_fee),
        "entrance_fee_ether": str(Web3.from_wei(settings.raffle.entrance_fee, "ether")),
        "interval_seconds": settings.raffle.interval_seconds,
        "vrf": {
            "coordinator_address": settings.vrf.coordinator_address,
            "key_hash": settings.vrf.key_hash,
            "subscription_id": settings.vrf.subscription_id,
            "callback_gas_limit": settings.vrf.callback_gas_limit,
            "request_confirmations": settings.vrf.request_confirmations,
            "num_words": NUM_WORDS,
            "native_payment": False,
        },
    }


@bp.get("/config")
def get_config():
    return jsonify(_public_config())
