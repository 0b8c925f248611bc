"""Balance contracts built from Balance Snapshots."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from cypherx.models import NATIVE_TOKEN, BalanceSnapshot, TokenHolding


class TokenBalance(BaseModel):
    """Balance of a single token/asset."""

    symbol: str = Field(..., description="Token symbol (ETH, USDC, etc.)")
    name: Optional[str] = Field(None, description="Token name")
    contract_address: str = Field(..., description="Token contract address")
    balance: Decimal = Field(..., description="Token balance in human-readable units")
    balance_raw: str = Field(..., description="Raw balance in smallest units")
    decimals: int = Field(..., description="Token decimals")
    usd_value: Optional[Decimal] = Field(None, description="USD value if available")
    logo_url: Optional[str] = Field(None, description="Token logo URL")

    class Config:
        json_encoders = {Decimal: str}

    @classmethod
    def from_holding(cls, holding: TokenHolding) -> "TokenBalance":
        return cls(
            symbol=holding.symbol,
            name=holding.name or None,
            contract_address=holding.contract_address,
            balance=holding.balance,
            balance_raw=str(holding.raw_balance),
            decimals=holding.decimals,
            usd_value=holding.usd_value,
            logo_url=holding.logo_url,
        )


class WalletBalanceResponse(BaseModel):
    """Response containing wallet balances from chain state."""

    success: bool = Field(default=True)
    address: str = Field(..., description="Wallet address queried")
    chain_id: int = Field(..., description="EVM chain ID")
    native_balance: TokenBalance = Field(..., description="Native token balance")
    token_balances: list[TokenBalance] = Field(default_factory=list)
    fetched_at: float = Field(..., description="Unix time of the snapshot")

    class Config:
        json_encoders = {Decimal: str}

    @classmethod
    def from_snapshot(cls, snapshot: BalanceSnapshot, chain_id: int) -> "WalletBalanceResponse":
        native = TokenBalance(
            symbol=NATIVE_TOKEN.symbol,
            name=NATIVE_TOKEN.name,
            contract_address=NATIVE_TOKEN.address,
            balance=snapshot.native_balance,
            balance_raw=str(snapshot.native_balance_raw),
            decimals=NATIVE_TOKEN.decimals,
        )
        return cls(
            address=snapshot.address,
            chain_id=chain_id,
            native_balance=native,
            token_balances=[TokenBalance.from_holding(h) for h in snapshot.holdings],
            fetched_at=snapshot.fetched_at,
        )


class HoldingsResponse(BaseModel):
    """ERC-20 holdings; an empty list means the address holds none."""

    success: bool = Field(default=True)
    address: str
    holdings: list[TokenBalance] = Field(default_factory=list)

    class Config:
        json_encoders = {Decimal: str}


class ProviderFailureResponse(BaseModel):
    """Soft failure with a retry affordance."""

    success: bool = Field(default=False)
    address: str
    operation: str
    error: str
    code: str = Field(default="provider_unavailable")
    retryable: bool = Field(default=True)
