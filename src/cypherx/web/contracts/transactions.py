"""Transfer and transaction-record contracts."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from cypherx.models import TransactionRecord, TxDirection, TxStatus
from cypherx.web.contracts.tokens import TokenInfo


class SendRequest(BaseModel):
    """Transfer from the unlocked wallet."""

    token: TokenInfo = Field(..., description="Token to send")
    amount: str = Field(..., description="Amount in human-readable units")
    recipient: str = Field(..., description="Recipient address")
    wait: bool = Field(default=False, description="Wait for confirmation before responding")


class TransactionRecordResponse(BaseModel):
    """Local record of a submitted transaction."""

    success: bool = Field(default=True)
    hash: str
    status: TxStatus
    direction: TxDirection
    amount: Decimal
    token_symbol: str
    token_address: str
    sender: str
    recipient: str
    timestamp: datetime
    error: Optional[str] = None

    class Config:
        json_encoders = {Decimal: str}

    @classmethod
    def from_record(cls, record: TransactionRecord) -> "TransactionRecordResponse":
        return cls(
            hash=record.hash,
            status=record.status,
            direction=record.direction,
            amount=record.amount,
            token_symbol=record.token_symbol,
            token_address=record.token_address,
            sender=record.sender,
            recipient=record.recipient,
            timestamp=record.timestamp,
            error=record.error,
        )


class TransactionListResponse(BaseModel):
    success: bool = Field(default=True)
    transactions: list[TransactionRecordResponse] = Field(default_factory=list)

    class Config:
        json_encoders = {Decimal: str}
