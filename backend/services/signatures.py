from __future__ import annotations

import logging
from typing import Optional, Tuple

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError as KeyValidationError
from sqlalchemy.orm import Session

from ..errors import InvalidSignature
from .ledger import AccountLedger, normalise_address

logger = logging.getLogger("raffle.signatures")


def entry_message(raffle_address: str, sender: str, value: int, nonce: int) -> str:
    return (
        f"Enter raffle {normalise_address(raffle_address)}\n"
        f"sender: {normalise_address(sender)}\n"
        f"value: {int(value)}\n"
        f"nonce: {int(nonce)}"
    )


def recover_signer(message: str, signature: str) -> Optional[str]:
    """Address that produced ``signature`` over ``message``, or None if it is malformed."""
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except (BadSignature, KeyValidationError, ValueError, TypeError):
        return None


class EntryAuthenticator:
    """Checks that an entry was signed by the account paying for it.

    Every accepted signature bumps the sender's nonce inside the caller's
    session, so a signature cannot be replayed and a rejected entry rolls the
    nonce back with everything else.
    """

    def __init__(self, raffle_address: str, ledger: AccountLedger) -> None:
        self._raffle_address = normalise_address(raffle_address)
        self._ledger = ledger

    def message_for(self, session: Session, sender: str, value: int) -> Tuple[str, int]:
        nonce = self._ledger.nonce_of(session, sender)
        return entry_message(self._raffle_address, sender, value, nonce), nonce

    def verify(self, session: Session, sender: str, value: int, signature: str) -> None:
        sender = normalise_address(sender)
        message, _ = self.message_for(session, sender, value)
        signer = recover_signer(message, signature)
        if signer != sender:
            logger.warning("Entry for %s signed by %s rejected", sender, signer)
            raise InvalidSignature(sender, signer)
        self._ledger.increment_nonce(session, sender)
