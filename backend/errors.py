"""Raffle error taxonomy.

Every error carries a stable ``code`` and the data needed to explain it; the
HTTP layer serialises ``details()`` as-is.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from .types import RaffleState


class RaffleError(Exception):
    code = "Raffle__Error"
    status_code = 400

    def details(self) -> Dict[str, Any]:
        return {}


class InvalidAddress(RaffleError):
    code = "Raffle__InvalidAddress"

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Not a valid address: {value!r}")

    def details(self) -> Dict[str, Any]:
        return {"value": self.value}


class InsufficientPayment(RaffleError):
    code = "Raffle__SendMoreToEnterRaffle"

    def __init__(self, payment: int, entrance_fee: int) -> None:
        self.payment = payment
        self.entrance_fee = entrance_fee
        super().__init__(f"Payment {payment} is below the entrance fee {entrance_fee}")

    def details(self) -> Dict[str, Any]:
        return {"payment": str(self.payment), "entrance_fee": str(self.entrance_fee)}


class RoundNotOpen(RaffleError):
    code = "Raffle__RaffleNotOpen"
    status_code = 409

    def __init__(self) -> None:
        super().__init__("Raffle is calculating a winner; entries are closed")


class InsufficientFunds(RaffleError):
    code = "Ledger__InsufficientFunds"

    def __init__(self, address: str, balance: int, amount: int) -> None:
        self.address = address
        self.balance = balance
        self.amount = amount
        super().__init__(f"{address} holds {balance}, cannot transfer {amount}")

    def details(self) -> Dict[str, Any]:
        return {"address": self.address, "balance": str(self.balance), "amount": str(self.amount)}


class UpkeepNotNeeded(RaffleError):
    code = "Raffle__UpkeepNotNeeded"
    status_code = 409

    def __init__(self, balance: int, players: int, state: RaffleState) -> None:
        self.balance = balance
        self.players = players
        self.state = state
        super().__init__(
            f"Upkeep not needed (balance={balance}, players={players}, state={state.name})"
        )

    def details(self) -> Dict[str, Any]:
        return {"balance": str(self.balance), "players": self.players, "state": self.state.name}


class RoundNotCalculating(RaffleError):
    code = "Raffle__NotCalculating"
    status_code = 409

    def __init__(self) -> None:
        super().__init__("No winner is being calculated")


class PlayerIndexOutOfRange(RaffleError, IndexError):
    code = "Raffle__PlayerIndexOutOfRange"
    status_code = 404

    def __init__(self, index: int, player_count: int) -> None:
        self.index = index
        self.player_count = player_count
        super().__init__(f"No player at index {index} ({player_count} players)")

    def details(self) -> Dict[str, Any]:
        return {"index": self.index, "players": self.player_count}


class PayoutTransferFailed(RaffleError):
    code = "Raffle__TransferFailed"
    status_code = 502

    def __init__(self, winner: str, amount: int) -> None:
        self.winner = winner
        self.amount = amount
        super().__init__(f"Transfer of {amount} to {winner} failed")

    def details(self) -> Dict[str, Any]:
        return {"winner": self.winner, "amount": str(self.amount)}


class OnlyCoordinatorCanFulfill(RaffleError):
    code = "OnlyCoordinatorCanFulfill"
    status_code = 403

    def __init__(self, have: str, want: str) -> None:
        self.have = have
        self.want = want
        super().__init__(f"Only coordinator {want} can fulfill, got {have}")

    def details(self) -> Dict[str, Any]:
        return {"have": self.have, "want": self.want}


class NonexistentRequest(RaffleError):
    code = "VRF__NonexistentRequest"
    status_code = 404

    def __init__(self, request_id: int) -> None:
        self.request_id = request_id
        super().__init__(f"Randomness request {request_id} does not exist or was fulfilled")

    def details(self) -> Dict[str, Any]:
        return {"request_id": self.request_id}


class InvalidRandomWords(RaffleError):
    code = "VRF__InvalidRandomWords"

    def __init__(self, expected: int, received: int) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"Expected {expected} random words, received {received}")

    def details(self) -> Dict[str, Any]:
        return {"expected": self.expected, "received": self.received}


class InvalidSignature(RaffleError):
    code = "Raffle__InvalidSignature"
    status_code = 401

    def __init__(self, sender: str, signer: Optional[str]) -> None:
        self.sender = sender
        self.signer = signer
        super().__init__(f"Entry for {sender} was not signed by it")

    def details(self) -> Dict[str, Any]:
        return {"sender": self.sender, "signer": self.signer}
