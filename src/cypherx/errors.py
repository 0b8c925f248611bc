"""Error taxonomy for the wallet core.

Every rejection carries a stable ``code`` so callers (and the HTTP layer) can
tell which rule failed: an invalid address is never reported as a generic
transaction failure.
"""

from decimal import Decimal
from typing import Optional


class WalletError(Exception):
    """Base class for all wallet-core errors."""

    code = "wallet_error"
    default_message = "Wallet operation failed"
    retryable = False

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


# Input validation (rejected before any network call)


class InvalidInput(WalletError):
    code = "invalid_input"
    default_message = "Invalid input"


class InvalidAddress(InvalidInput):
    code = "invalid_address"
    default_message = "Enter a valid address"


class InvalidAmount(InvalidInput):
    code = "invalid_amount"
    default_message = "Enter an amount greater than zero"


class UnresolvedDecimals(InvalidInput):
    """Token decimals are unknown, so no amount math may happen."""

    code = "unresolved_decimals"
    default_message = "Token decimals could not be determined"


# Vault / authentication


class VaultError(WalletError):
    code = "vault_error"
    default_message = "Vault operation failed"


class NoWallet(VaultError):
    code = "no_wallet"
    default_message = "No wallet found. Create or import one first"


class WalletExists(VaultError):
    code = "wallet_exists"
    default_message = "A wallet already exists. Clear it before creating or importing another"


class VaultLocked(VaultError):
    code = "vault_locked"
    default_message = "Wallet is locked. Unlock it to continue"


class InvalidPassword(VaultError):
    code = "invalid_password"
    default_message = "Invalid password"


class InvalidBackupFormat(VaultError):
    code = "invalid_backup_format"
    default_message = "Invalid wallet file format"


# Providers


class ProviderUnavailable(WalletError):
    """Network or provider fault. Safe to retry."""

    code = "provider_unavailable"
    default_message = "Provider unavailable, please retry"
    retryable = True

    def __init__(self, message: Optional[str] = None, provider: Optional[str] = None):
        self.provider = provider
        super().__init__(message)


class RpcError(ProviderUnavailable):
    """JSON-RPC node answered with an error object."""

    code = "rpc_error"
    default_message = "RPC request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        rpc_code: Optional[int] = None,
        provider: Optional[str] = "rpc",
    ):
        self.rpc_code = rpc_code
        super().__init__(message, provider=provider)


class QuoteUnavailable(WalletError):
    """Aggregator has no route for the request (liquidity, validation)."""

    code = "quote_unavailable"
    default_message = "No quote available for this swap"


# Business rules


class InsufficientBalance(WalletError):
    code = "insufficient_balance"
    default_message = "Insufficient balance"

    def __init__(
        self,
        available: Decimal,
        requested: Decimal,
        symbol: str = "",
    ):
        self.available = available
        self.requested = requested
        self.symbol = symbol
        unit = f" {symbol}" if symbol else ""
        super().__init__(
            f"Insufficient balance: requested {requested}{unit}, available {available}{unit}"
        )


class QuoteExpired(WalletError):
    """Firm quote is past its validity window or was rejected as stale."""

    code = "quote_expired"
    default_message = "Quote expired. Fetch a new quote and try again"


class StaleQuote(WalletError):
    """Quote does not belong to the current swap intent."""

    code = "stale_quote"
    default_message = "Quote no longer matches the swap. Fetch a new quote"


class BroadcastFailed(WalletError):
    """Fatal to the current intent. Never retried automatically."""

    code = "broadcast_failed"
    default_message = "Transaction broadcast failed"
