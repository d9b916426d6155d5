from __future__ import annotations

import hmac

from flask import Blueprint, current_app, jsonify, request

from ..extensions import get_services
from ..schemas import FulfillRequest

bp = Blueprint("oracle", __name__)


def _is_oracle() -> bool:
    expected = get_services().settings.oracle_api_key
    if not expected:
        # Fulfillment moves funds; without a configured secret nobody may call it.
        return False
    provided = request.headers.get("X-Oracle-Token", "")
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


@bp.before_request
def verify_oracle():
    if not _is_oracle():
        current_app.logger.warning("Rejected oracle call from %s", request.remote_addr)
        return jsonify({"error": "unauthorized"}), 401
    return None


@bp.get("/requests")
def list_pending_requests():
    return jsonify(get_services().coordinator.pending_requests())


@bp.post("/requests/<int:request_id>/fulfill")
def fulfill_request(request_id: int):
    payload = request.get_json(force=True, silent=True) or {}
    data = FulfillRequest(**payload)

    services = get_services()
    services.coordinator.fulfill_random_words(request_id, data.random_words)
    snapshot = services.raffle.snapshot()
    return jsonify(
        {
            "request_id": request_id,
            "state": snapshot.state.name,
            "recent_winner": snapshot.recent_winner,
            "round_number": snapshot.round_number,
        }
    )
