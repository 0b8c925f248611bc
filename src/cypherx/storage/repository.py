"""Repository for local wallet storage."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cypherx.models import (
    TokenDescriptor,
    TransactionRecord,
    TxDirection,
    TxStatus,
    Wallet,
)
from cypherx.storage.models import RecentToken, StoredWallet, TransactionRow


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class WalletRepository:
    """Repository for all namespace-scoped storage operations."""

    def __init__(self, session: AsyncSession, namespace: str):
        self.session = session
        self.namespace = namespace

    # Wallet operations
    async def get_wallet(self) -> Optional[Wallet]:
        row = await self.session.get(StoredWallet, self.namespace)
        if row is None:
            return None
        return Wallet(
            address=row.address,
            encrypted_key=row.ciphertext,
            salt=row.salt,
            kdf_iterations=row.kdf_iterations,
            created_at=_aware(row.created_at),
        )

    async def save_wallet(self, wallet: Wallet) -> None:
        row = await self.session.get(StoredWallet, self.namespace)
        if row is None:
            row = StoredWallet(namespace=self.namespace)
            self.session.add(row)
        row.address = wallet.address
        row.ciphertext = wallet.encrypted_key
        row.salt = wallet.salt
        row.kdf_iterations = wallet.kdf_iterations
        row.created_at = wallet.created_at
        await self.session.flush()

    async def delete_wallet(self) -> bool:
        """Overwrite the ciphertext, then delete the row."""
        row = await self.session.get(StoredWallet, self.namespace)
        if row is None:
            return False
        await self.session.execute(
            update(StoredWallet)
            .where(StoredWallet.namespace == self.namespace)
            .values(ciphertext="0" * len(row.ciphertext), salt="0" * len(row.salt))
        )
        await self.session.flush()
        await self.session.delete(row)
        await self.session.flush()
        return True

    # Recent token operations
    async def get_recent_tokens(self) -> list[TokenDescriptor]:
        stmt = (
            select(RecentToken)
            .where(RecentToken.namespace == self.namespace)
            .order_by(RecentToken.position)
        )
        result = await self.session.execute(stmt)
        return [
            TokenDescriptor(
                address=row.address,
                symbol=row.symbol,
                name=row.name or "",
                decimals=row.decimals,
                logo_url=row.logo_url,
            )
            for row in result.scalars().all()
        ]

    async def replace_recent_tokens(self, tokens: list[TokenDescriptor]) -> None:
        await self.session.execute(
            delete(RecentToken).where(RecentToken.namespace == self.namespace)
        )
        for position, token in enumerate(tokens):
            self.session.add(
                RecentToken(
                    namespace=self.namespace,
                    position=position,
                    address=token.address.lower(),
                    symbol=token.symbol,
                    name=token.name,
                    decimals=token.decimals,
                    logo_url=token.logo_url,
                )
            )
        await self.session.flush()

    # Transaction operations
    async def add_transaction(self, record: TransactionRecord) -> None:
        self.session.add(
            TransactionRow(
                namespace=self.namespace,
                hash=record.hash.lower(),
                status=record.status.value,
                direction=record.direction.value,
                amount=str(record.amount),
                token_symbol=record.token_symbol,
                token_address=record.token_address,
                sender=record.sender,
                recipient=record.recipient,
                error=record.error,
                timestamp=record.timestamp,
            )
        )
        await self.session.flush()

    async def update_transaction_status(
        self,
        tx_hash: str,
        status: TxStatus,
        error: Optional[str] = None,
    ) -> bool:
        row = await self._get_row(tx_hash)
        if row is None:
            return False
        row.status = status.value
        row.error = error
        await self.session.flush()
        return True

    async def get_transaction(self, tx_hash: str) -> Optional[TransactionRecord]:
        row = await self._get_row(tx_hash)
        return self._to_record(row) if row else None

    async def list_transactions(
        self,
        limit: int = 50,
        status: Optional[TxStatus] = None,
    ) -> list[TransactionRecord]:
        stmt = select(TransactionRow).where(TransactionRow.namespace == self.namespace)
        if status is not None:
            stmt = stmt.where(TransactionRow.status == status.value)
        stmt = stmt.order_by(TransactionRow.timestamp.desc(), TransactionRow.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return [self._to_record(row) for row in result.scalars().all()]

    async def _get_row(self, tx_hash: str) -> Optional[TransactionRow]:
        stmt = select(TransactionRow).where(
            TransactionRow.namespace == self.namespace,
            TransactionRow.hash == tx_hash.lower(),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _to_record(row: TransactionRow) -> TransactionRecord:
        return TransactionRecord(
            hash=row.hash,
            status=TxStatus(row.status),
            direction=TxDirection(row.direction),
            amount=Decimal(row.amount),
            token_symbol=row.token_symbol,
            token_address=row.token_address,
            sender=row.sender,
            recipient=row.recipient,
            timestamp=_aware(row.timestamp),
            error=row.error,
        )
