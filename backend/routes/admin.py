from __future__ import annotations

import hmac

from flask import Blueprint, current_app, jsonify, request

from ..extensions import get_services
from ..schemas import AccountPayableRequest, AccountResponse, FundAccountRequest
from ..services.ledger import normalise_address

bp = Blueprint("admin", __name__)


def _require_admin() -> bool:
    api_key = get_services().settings.admin_api_key
    if not api_key:
        # Funding and payable flags move money; no key means nobody is admin.
        return False
    provided = request.headers.get("X-Admin-Token", "")
    return hmac.compare_digest(provided.encode("utf-8"), api_key.encode("utf-8"))


@bp.before_request
def verify_admin():
    if not _require_admin():
        current_app.logger.warning("Rejected admin call from %s", request.remote_addr)
        return jsonify({"error": "unauthorized"}), 401
    return None


def _account_payload(address: str) -> dict:
    services = get_services()
    with services.database.session_scope() as session:
        response = AccountResponse(
            address=address,
            balance_wei=str(services.ledger.balance_of(session, address)),
            payable=services.ledger.is_payable(session, address),
        )
    return response.model_dump()


@bp.get("/accounts/<address>")
def get_account(address: str):
    return jsonify(_account_payload(normalise_address(address)))


@bp.post("/accounts/<address>/fund")
def fund_account(address: str):
    address = normalise_address(address)
    payload = request.get_json(force=True, silent=True) or {}
    data = FundAccountRequest(**payload)

    services = get_services()
    with services.database.session_scope() as session:
        services.ledger.deposit(session, address, data.amount_wei)
    return jsonify(_account_payload(address))


@bp.put("/accounts/<address>/payable")
def set_payable(address: str):
    address = normalise_address(address)
    payload = request.get_json(force=True, silent=True) or {}
    data = AccountPayableRequest(**payload)

    services = get_services()
    with services.database.session_scope() as session:
        services.ledger.set_payable(session, address, data.payable)
    return jsonify(_account_payload(address))
