"""Local persistent storage for the wallet ciphertext, recent tokens and activity."""

from cypherx.storage.database import close_db, get_db, init_db
from cypherx.storage.models import Base, RecentToken, StoredWallet, TransactionRow
from cypherx.storage.repository import WalletRepository
from cypherx.storage.store import WalletStore

__all__ = [
    # Models
    "Base",
    "StoredWallet",
    "RecentToken",
    "TransactionRow",
    # Database
    "get_db",
    "init_db",
    "close_db",
    "WalletRepository",
    "WalletStore",
]
