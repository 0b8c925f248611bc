"""Namespace-scoped local store used by the wallet components.

Each call runs in its own short transaction. Missing rows mean "no wallet",
"empty cache" or "no history", never an error.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cypherx.models import TokenDescriptor, TransactionRecord, TxStatus, Wallet
from cypherx.storage.database import get_db, get_session_factory
from cypherx.storage.repository import WalletRepository

logger = logging.getLogger(__name__)


class WalletStore:
    def __init__(
        self,
        namespace: str,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.namespace = namespace
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def load_wallet(self) -> Optional[Wallet]:
        async with get_db(self.session_factory) as session:
            return await WalletRepository(session, self.namespace).get_wallet()

    async def save_wallet(self, wallet: Wallet) -> None:
        async with get_db(self.session_factory) as session:
            await WalletRepository(session, self.namespace).save_wallet(wallet)
        logger.info(f"Stored encrypted wallet {wallet.address} in namespace '{self.namespace}'")

    async def clear_wallet(self) -> bool:
        async with get_db(self.session_factory) as session:
            removed = await WalletRepository(session, self.namespace).delete_wallet()
        if removed:
            logger.info(f"Wallet ciphertext destroyed in namespace '{self.namespace}'")
        return removed

    async def load_recent_tokens(self) -> list[TokenDescriptor]:
        async with get_db(self.session_factory) as session:
            return await WalletRepository(session, self.namespace).get_recent_tokens()

    async def save_recent_tokens(self, tokens: list[TokenDescriptor]) -> None:
        async with get_db(self.session_factory) as session:
            await WalletRepository(session, self.namespace).replace_recent_tokens(tokens)

    async def add_transaction(self, record: TransactionRecord) -> None:
        async with get_db(self.session_factory) as session:
            await WalletRepository(session, self.namespace).add_transaction(record)

    async def update_transaction(self, record: TransactionRecord) -> bool:
        async with get_db(self.session_factory) as session:
            return await WalletRepository(session, self.namespace).update_transaction_status(
                record.hash, record.status, record.error
            )

    async def get_transaction(self, tx_hash: str) -> Optional[TransactionRecord]:
        async with get_db(self.session_factory) as session:
            return await WalletRepository(session, self.namespace).get_transaction(tx_hash)

    async def list_transactions(
        self,
        limit: int = 50,
        status: Optional[TxStatus] = None,
    ) -> list[TransactionRecord]:
        async with get_db(self.session_factory) as session:
            return await WalletRepository(session, self.namespace).list_transactions(
                limit=limit, status=status
            )
