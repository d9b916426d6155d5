from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session
from web3 import Web3

from ..errors import InsufficientFunds, InvalidAddress
from ..models import Account

logger = logging.getLogger("raffle.ledger")


def normalise_address(value: str) -> str:
    if not isinstance(value, str) or not Web3.is_address(value):
        raise InvalidAddress(value)
    return Web3.to_checksum_address(value)


class AccountLedger:
    """Native balances of every address the raffle deals with.

    All methods run inside the caller's session so that balance changes commit
    or roll back together with the raffle state.
    """

    def _get(self, session: Session, address: str) -> Optional[Account]:
        return session.get(Account, normalise_address(address))

    def _ensure(self, session: Session, address: str) -> Account:
        address = normalise_address(address)
        account = session.get(Account, address)
        if account is None:
            account = Account(address=address, balance=0, payable=True, nonce=0)
            session.add(account)
            session.flush()
        return account

    def balance_of(self, session: Session, address: str) -> int:
        account = self._get(session, address)
        return int(account.balance) if account else 0

    def is_payable(self, session: Session, address: str) -> bool:
        account = self._get(session, address)
        return True if account is None else bool(account.payable)

    def set_payable(self, session: Session, address: str, payable: bool) -> None:
        account = self._ensure(session, address)
        account.payable = payable

    def deposit(self, session: Session, address: str, amount: int) -> int:
        if amount < 0:
            raise ValueError("Deposit amount must not be negative")
        account = self._ensure(session, address)
        account.balance = int(account.balance) + amount
        logger.debug("Deposited %s wei to %s", amount, account.address)
        return int(account.balance)

    def transfer(self, session: Session, sender: str, recipient: str, amount: int) -> None:
        """Move funds the sender must hold; used for incoming payments."""
        source = self._ensure(session, sender)
        if int(source.balance) < amount:
            raise InsufficientFunds(source.address, int(source.balance), amount)
        target = self._ensure(session, recipient)
        source.balance = int(source.balance) - amount
        target.balance = int(target.balance) + amount

    def send_value(self, session: Session, sender: str, recipient: str, amount: int) -> bool:
        """Outgoing value transfer. Returns False instead of raising when it fails."""
        source = self._ensure(session, sender)
        target = self._ensure(session, recipient)
        if not target.payable:
            logger.warning("Recipient %s rejected %s wei", target.address, amount)
            return False
        if int(source.balance) < amount:
            return False
        source.balance = int(source.balance) - amount
        target.balance = int(target.balance) + amount
        return True

    def nonce_of(self, session: Session, address: str) -> int:
        account = self._get(session, address)
        return int(account.nonce) if account else 0

    def increment_nonce(self, session: Session, address: str) -> int:
        account = self._ensure(session, address)
        account.nonce = int(account.nonce or 0) + 1
        return int(account.nonce)
