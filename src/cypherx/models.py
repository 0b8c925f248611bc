"""Domain types shared by the wallet components."""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Optional

from cypherx.errors import InvalidInput, UnresolvedDecimals
from cypherx.utils.addresses import NATIVE_TOKEN_ADDRESS, is_native, same_address
from cypherx.utils.units import from_smallest_unit, parse_amount, to_smallest_unit


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Wallet:
    """Persisted wallet: address plus encrypted key material. Never plaintext."""

    address: str
    encrypted_key: str
    salt: str
    kdf_iterations: int
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "created_at": self.created_at.isoformat(),
        }


# ======================
# Tokens and balances
# ======================


@dataclass(frozen=True)
class TokenDescriptor:
    """Token metadata. ``decimals`` is None until resolved."""

    address: str
    symbol: str
    name: str = ""
    decimals: Optional[int] = None
    logo_url: Optional[str] = None

    @property
    def key(self) -> str:
        return self.address.lower()

    @property
    def is_native(self) -> bool:
        return is_native(self.address)

    def require_decimals(self) -> int:
        if self.decimals is None:
            raise UnresolvedDecimals(f"Decimals for {self.symbol} ({self.address}) are not resolved")
        return self.decimals

    def with_decimals(self, decimals: int) -> "TokenDescriptor":
        return replace(self, decimals=decimals)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "logo_url": self.logo_url,
        }


NATIVE_TOKEN = TokenDescriptor(
    address=NATIVE_TOKEN_ADDRESS,
    symbol="ETH",
    name="Ethereum",
    decimals=18,
)


@dataclass
class TokenHolding:
    """ERC-20 balance held by an address, in smallest units."""

    contract_address: str
    symbol: str
    decimals: int
    raw_balance: int
    name: str = ""
    logo_url: Optional[str] = None
    usd_value: Optional[Decimal] = None

    @property
    def balance(self) -> Decimal:
        return from_smallest_unit(self.raw_balance, self.decimals)

    def as_token(self) -> TokenDescriptor:
        return TokenDescriptor(
            address=self.contract_address,
            symbol=self.symbol,
            name=self.name,
            decimals=self.decimals,
            logo_url=self.logo_url,
        )


@dataclass
class BalanceSnapshot:
    """Latest known balances for an address. Replaced wholesale, never merged."""

    address: str
    native_balance_raw: int
    holdings: list[TokenHolding] = field(default_factory=list)
    fetched_at: float = field(default_factory=time.time)

    ok = True

    @property
    def native_balance(self) -> Decimal:
        return from_smallest_unit(self.native_balance_raw, NATIVE_TOKEN.decimals)


@dataclass
class ProviderFailure:
    """Typed failure result for soft-failing fetches (retry affordance)."""

    address: str
    operation: str
    error: str
    retryable: bool = True
    occurred_at: float = field(default_factory=time.time)

    ok = False


# ======================
# Transfers and transactions
# ======================


class TxStatus(str, Enum):
    """Status of a submitted transaction."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class TxDirection(str, Enum):
    """What a transaction does from the wallet's point of view."""

    SEND = "send"
    SWAP = "swap"
    APPROVE = "approve"
    RECEIVE = "receive"


@dataclass(frozen=True)
class TransferIntent:
    """Request to move ``amount`` of ``token`` to ``recipient``."""

    token: TokenDescriptor
    amount: Decimal
    recipient: str

    @classmethod
    def create(cls, token: TokenDescriptor, amount, recipient: str) -> "TransferIntent":
        return cls(token=token, amount=parse_amount(amount), recipient=recipient.strip())


@dataclass
class UnsignedTx:
    """Transaction ready for signing once nonce/gas price are filled in."""

    to: str
    value: int
    data: str
    chain_id: int
    gas: int
    gas_price: Optional[int] = None
    nonce: Optional[int] = None
    # Descriptive fields carried into the Transaction Record
    direction: TxDirection = TxDirection.SEND
    amount: Decimal = Decimal(0)
    token_symbol: str = ""
    token_address: str = ""
    recipient: str = ""
    description: str = ""

    @property
    def is_complete(self) -> bool:
        return self.nonce is not None and self.gas_price is not None

    def to_tx_dict(self) -> dict:
        """Legacy transaction dict accepted by eth_account."""
        if not self.is_complete:
            raise InvalidInput("Transaction is missing nonce or gas price")
        return {
            "to": self.to,
            "value": self.value,
            "data": self.data,
            "gas": self.gas,
            "gasPrice": self.gas_price,
            "nonce": self.nonce,
            "chainId": self.chain_id,
        }


@dataclass
class TransactionRecord:
    """Local record of a submitted transaction."""

    hash: str
    status: TxStatus
    direction: TxDirection
    amount: Decimal
    token_symbol: str
    token_address: str
    sender: str
    recipient: str
    timestamp: datetime = field(default_factory=utcnow)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != TxStatus.PENDING

    def transition(self, status: TxStatus, error: Optional[str] = None) -> None:
        """Move pending -> confirmed|failed. Terminal states are final."""
        if self.is_terminal:
            raise ValueError(f"Transaction {self.hash} is already {self.status.value}")
        self.status = status
        if error:
            self.error = error

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "status": self.status.value,
            "direction": self.direction.value,
            "amount": str(self.amount),
            "token_symbol": self.token_symbol,
            "token_address": self.token_address,
            "sender": self.sender,
            "recipient": self.recipient,
            "timestamp": self.timestamp.isoformat(),
            "error": self.error,
        }


@dataclass
class TxHandle:
    """Reference returned by submit. Confirmation is tracked separately."""

    hash: str
    record: TransactionRecord
    tx: UnsignedTx


# ======================
# Swaps
# ======================


@dataclass(frozen=True)
class SwapIntent:
    """Sell ``sell_amount`` of ``sell_token`` for ``buy_token``."""

    sell_token: TokenDescriptor
    buy_token: TokenDescriptor
    sell_amount: Decimal
    slippage_bps: int = 100

    def validate(self) -> None:
        if same_address(self.sell_token.address, self.buy_token.address):
            raise InvalidInput("Select two different tokens")
        parse_amount(self.sell_amount)
        if not 0 <= self.slippage_bps <= 10_000:
            raise InvalidInput(f"Slippage out of range: {self.slippage_bps} bps")

    @property
    def sell_amount_raw(self) -> int:
        return to_smallest_unit(self.sell_amount, self.sell_token.require_decimals())

    def flipped(self) -> "SwapIntent":
        """Pay/receive swap. Amount stays as typed."""
        return replace(self, sell_token=self.buy_token, buy_token=self.sell_token)

    def same_request(self, other: "SwapIntent") -> bool:
        return (
            same_address(self.sell_token.address, other.sell_token.address)
            and same_address(self.buy_token.address, other.buy_token.address)
            and self.sell_amount == other.sell_amount
            and self.slippage_bps == other.slippage_bps
        )


@dataclass
class Quote:
    """Aggregator answer for one Swap Intent.

    ``firm`` quotes carry an executable transaction; indicative ones never do.
    """

    intent: SwapIntent
    sell_amount_raw: int
    buy_amount_raw: int
    firm: bool
    raw_payload: dict[str, Any] = field(default_factory=dict)
    taker: Optional[str] = None
    transaction: Optional[dict[str, Any]] = None
    allowance_target: Optional[str] = None
    price_impact: Optional[Decimal] = None
    timestamp: float = field(default_factory=time.time)
    ttl_seconds: int = 60

    @property
    def buy_amount(self) -> Decimal:
        return from_smallest_unit(self.buy_amount_raw, self.intent.buy_token.require_decimals())

    @property
    def sell_amount(self) -> Decimal:
        return from_smallest_unit(self.sell_amount_raw, self.intent.sell_token.require_decimals())

    @property
    def rate(self) -> Decimal:
        """Buy tokens received per sell token."""
        if self.sell_amount_raw == 0:
            return Decimal(0)
        return self.buy_amount / self.sell_amount

    @property
    def is_expired(self) -> bool:
        return time.time() > (self.timestamp + self.ttl_seconds)

    @property
    def seconds_until_expiry(self) -> float:
        return (self.timestamp + self.ttl_seconds) - time.time()

    @property
    def allowance_issue(self) -> Optional[dict]:
        issues = self.raw_payload.get("issues") or {}
        return issues.get("allowance") or None

    def matches(self, intent: SwapIntent) -> bool:
        return self.intent.same_request(intent)


# ======================
# Charts
# ======================


class Timeframe(str, Enum):
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"


@dataclass(frozen=True)
class TimeframeSpec:
    unit: str  # minute | hour | day
    aggregate: int
    points: int
    days: int  # history window used by day-granular sources

    @property
    def step_seconds(self) -> int:
        return {"minute": 60, "hour": 3600, "day": 86400}[self.unit] * self.aggregate


TIMEFRAMES: dict[Timeframe, TimeframeSpec] = {
    Timeframe.M15: TimeframeSpec("minute", 15, 96, 1),
    Timeframe.H1: TimeframeSpec("hour", 1, 48, 2),
    Timeframe.H4: TimeframeSpec("hour", 4, 42, 7),
    Timeframe.D1: TimeframeSpec("day", 1, 30, 30),
}


@dataclass(frozen=True)
class PricePoint:
    timestamp: int
    price: Decimal
    volume: Optional[Decimal] = None


@dataclass
class PriceInfo:
    price_usd: Decimal
    change_24h: Optional[Decimal] = None


@dataclass
class ChartSeries:
    """Price series for display. ``synthetic`` series must be labeled as such."""

    token_address: str
    timeframe: Timeframe
    points: list[PricePoint] = field(default_factory=list)
    synthetic: bool = False
    source: str = "none"

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[PricePoint]:
        return iter(self.points)

    @property
    def is_empty(self) -> bool:
        return not self.points
