from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..extensions import get_services
from ..schemas import (
    EnterRaffleRequest,
    EntryMessageResponse,
    PerformUpkeepResponse,
    RaffleStateResponse,
    UpkeepCheckResponse,
)
from ..services.ledger import normalise_address

bp = Blueprint("raffle", __name__)


def _state_payload() -> dict:
    snapshot = get_services().raffle.snapshot()
    response = RaffleStateResponse(
        state=snapshot.state.name,
        round_number=snapshot.round_number,
        entrance_fee_wei=str(snapshot.entrance_fee),
        interval_seconds=snapshot.interval_seconds,
        balance_wei=str(snapshot.balance),
        player_count=snapshot.player_count,
        last_timestamp=snapshot.last_timestamp,
        recent_winner=snapshot.recent_winner,
    )
    return response.model_dump()


@bp.get("")
def get_raffle():
    return jsonify(_state_payload())


@bp.get("/entry-message")
def get_entry_message():
    sender = normalise_address(request.args.get("sender", ""))
    value = request.args.get("value", 0, type=int)
    services = get_services()
    with services.database.session_scope() as session:
        message, nonce = services.authenticator.message_for(session, sender, value)
    return jsonify(EntryMessageResponse(message=message, nonce=nonce).model_dump())


@bp.post("/enter")
def enter_raffle():
    payload = request.get_json(force=True, silent=True) or {}
    data = EnterRaffleRequest(**payload)

    services = get_services()
    with services.database.session_scope() as session:
        services.authenticator.verify(session, data.sender, data.value, data.signature)
        services.raffle.enter(data.sender, data.value)
    return jsonify(_state_payload()), 201


@bp.get("/players/<int:index>")
def get_player(index: int):
    player = get_services().raffle.get_player(index)
    return jsonify({"index": index, "player": player})


@bp.get("/upkeep")
def check_upkeep():
    needed = get_services().raffle.check_upkeep()
    return jsonify(UpkeepCheckResponse(upkeep_needed=needed).model_dump())


@bp.post("/upkeep")
def perform_upkeep():
    raffle = get_services().raffle
    request_id = raffle.perform_upkeep()
    response = PerformUpkeepResponse(request_id=request_id, state=raffle.get_raffle_state().name)
    return jsonify(response.model_dump()), 202


@bp.get("/rounds")
def list_rounds():
    limit = request.args.get("limit", type=int)
    return jsonify(get_services().raffle.list_results(limit=limit))
