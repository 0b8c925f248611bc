"""Swap price, quote and execution contracts."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from cypherx.models import Quote, SwapIntent
from cypherx.web.contracts.tokens import TokenInfo


class SwapRequest(BaseModel):
    """A Swap Intent as sent by clients."""

    sell_token: TokenInfo = Field(..., description="Token to sell")
    buy_token: TokenInfo = Field(..., description="Token to buy")
    sell_amount: Decimal = Field(..., gt=0, description="Amount to sell in human-readable units")
    slippage_bps: Optional[int] = Field(
        None, ge=0, le=10_000, description="Slippage tolerance in bps (100 = 1%)"
    )

    def to_intent(self, default_slippage_bps: int) -> SwapIntent:
        return SwapIntent(
            sell_token=self.sell_token.to_descriptor(),
            buy_token=self.buy_token.to_descriptor(),
            sell_amount=self.sell_amount,
            slippage_bps=default_slippage_bps if self.slippage_bps is None else self.slippage_bps,
        )


class SwapQuoteResponse(BaseModel):
    """Indicative price or firm quote summary."""

    success: bool = Field(default=True)
    firm: bool = Field(..., description="True only for executable quotes")
    sell_token: TokenInfo
    buy_token: TokenInfo
    sell_amount: Decimal
    buy_amount: Decimal
    rate: Decimal = Field(..., description="Buy tokens per sell token")
    price_impact: Optional[Decimal] = None
    slippage_bps: int
    expires_in: Optional[float] = Field(None, description="Seconds until a firm quote expires")
    approval_required: bool = Field(default=False)

    class Config:
        json_encoders = {Decimal: str}

    @classmethod
    def from_quote(cls, quote: Quote) -> "SwapQuoteResponse":
        return cls(
            firm=quote.firm,
            sell_token=TokenInfo.from_descriptor(quote.intent.sell_token),
            buy_token=TokenInfo.from_descriptor(quote.intent.buy_token),
            sell_amount=quote.sell_amount,
            buy_amount=quote.buy_amount,
            rate=quote.rate,
            price_impact=quote.price_impact,
            slippage_bps=quote.intent.slippage_bps,
            expires_in=max(quote.seconds_until_expiry, 0.0) if quote.firm else None,
            approval_required=bool(quote.allowance_issue) and not quote.intent.sell_token.is_native,
        )


class SwapExecuteResponse(BaseModel):
    success: bool = Field(default=True)
    hash: str
    status: str
    description: str = ""
