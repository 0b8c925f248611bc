"""Key Vault: encrypted key storage and the unlocked signing Session."""

from cypherx.vault.base import Session, VaultState
from cypherx.vault.key_vault import KeyVault

__all__ = [
    "KeyVault",
    "Session",
    "VaultState",
]
