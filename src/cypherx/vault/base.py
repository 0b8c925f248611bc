"""Vault state machine and the in-memory signing Session.

NoWallet -> Locked <-> Unlocked. Clearing returns to NoWallet.
"""

import time
from enum import Enum
from typing import Optional

from eth_account.signers.local import LocalAccount


class VaultState(str, Enum):
    """Lifecycle state of the Key Vault."""

    NO_WALLET = "no_wallet"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class Session:
    """Unlocked signing session.

    Holds the decrypted account; only the vault that opened it can sign with
    it. Sessions cannot be copied or pickled, and closing one drops the key.
    """

    __slots__ = ("address", "generation", "opened_at", "_account")

    def __init__(self, account: LocalAccount, generation: int):
        self._account: Optional[LocalAccount] = account
        self.address: str = account.address
        self.generation = generation
        self.opened_at = time.time()

    @property
    def active(self) -> bool:
        return self._account is not None

    def _close(self) -> None:
        self._account = None

    def __copy__(self):
        raise TypeError("Session objects cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("Session objects cannot be copied")

    def __reduce__(self):
        raise TypeError("Session objects cannot be serialized")

    def __repr__(self) -> str:
        return f"Session(address={self.address}, active={self.active})"
