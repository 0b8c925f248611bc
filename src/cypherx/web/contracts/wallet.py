"""Wallet lifecycle contracts.

Passwords travel only in requests. Responses never contain key material,
except the explicit backup export.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from cypherx.vault import VaultState


class PasswordRequest(BaseModel):
    """Create or unlock the wallet."""

    password: str = Field(..., min_length=1, description="Wallet password")


class ImportWalletRequest(BaseModel):
    """Import a ``{address, privateKey, createdAt}`` backup document."""

    backup: Union[dict[str, Any], str] = Field(..., description="Backup JSON (object or string)")
    password: str = Field(..., min_length=1, description="Password to encrypt the key with")


class WalletStatusResponse(BaseModel):
    """Vault state; the address is present whenever a wallet exists."""

    success: bool = Field(default=True)
    state: VaultState = Field(..., description="no_wallet, locked or unlocked")
    address: Optional[str] = Field(None, description="Wallet address (checksummed)")
    created_at: Optional[datetime] = Field(None, description="Wallet creation time")


class WalletBackupResponse(BaseModel):
    """Plaintext backup document. Handle as a secret."""

    success: bool = Field(default=True)
    address: str
    privateKey: str
    createdAt: int = Field(..., description="Milliseconds since epoch")
