from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from web3 import Web3

UINT256_MAX = 2**256 - 1


class EnterRaffleRequest(BaseModel):
    sender: str = Field(..., description="Address paying the entrance fee.")
    value: int = Field(..., ge=0, description="Payment in wei.")
    signature: str = Field(
        ..., min_length=1, description="Sender's personal_sign signature over the entry message."
    )

    @field_validator("sender")
    @classmethod
    def validate_sender(cls, value: str) -> str:
        if not Web3.is_address(value):
            raise ValueError("Not a valid address.")
        return Web3.to_checksum_address(value)


class EntryMessageResponse(BaseModel):
    message: str
    nonce: int


class RaffleStateResponse(BaseModel):
    state: str
    round_number: int
    entrance_fee_wei: str
    interval_seconds: int
    balance_wei: str
    player_count: int
    last_timestamp: int
    recent_winner: Optional[str] = None


class UpkeepCheckResponse(BaseModel):
    upkeep_needed: bool


class PerformUpkeepResponse(BaseModel):
    request_id: int
    state: str


class FulfillRequest(BaseModel):
    random_words: List[int] = Field(..., min_length=1)

    @field_validator("random_words")
    @classmethod
    def validate_words(cls, value: List[int]) -> List[int]:
        for word in value:
            if not 0 <= word <= UINT256_MAX:
                raise ValueError("Random words must be uint256 values.")
        return value


class FundAccountRequest(BaseModel):
    amount_wei: int = Field(..., ge=0)


class AccountPayableRequest(BaseModel):
    payable: bool


class AccountResponse(BaseModel):
    address: str
    balance_wei: str
    payable: bool
