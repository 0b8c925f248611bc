"""Request and response contracts for the HTTP layer."""

from cypherx.web.contracts.balances import (
    HoldingsResponse,
    ProviderFailureResponse,
    TokenBalance,
    WalletBalanceResponse,
)
from cypherx.web.contracts.charts import ChartSeriesResponse, PricePointModel
from cypherx.web.contracts.swaps import SwapExecuteResponse, SwapQuoteResponse, SwapRequest
from cypherx.web.contracts.tokens import RecordUsageRequest, TokenInfo, TokenListResponse
from cypherx.web.contracts.transactions import (
    SendRequest,
    TransactionListResponse,
    TransactionRecordResponse,
)
from cypherx.web.contracts.wallet import (
    ImportWalletRequest,
    PasswordRequest,
    WalletBackupResponse,
    WalletStatusResponse,
)

__all__ = [
    # Balance contracts
    "TokenBalance",
    "WalletBalanceResponse",
    "HoldingsResponse",
    "ProviderFailureResponse",
    # Chart contracts
    "ChartSeriesResponse",
    "PricePointModel",
    # Swap contracts
    "SwapRequest",
    "SwapQuoteResponse",
    "SwapExecuteResponse",
    # Token contracts
    "TokenInfo",
    "TokenListResponse",
    "RecordUsageRequest",
    # Transaction contracts
    "SendRequest",
    "TransactionRecordResponse",
    "TransactionListResponse",
    # Wallet contracts
    "PasswordRequest",
    "ImportWalletRequest",
    "WalletStatusResponse",
    "WalletBackupResponse",
]
