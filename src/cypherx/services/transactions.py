"""Transaction Constructor & Submitter.

``build_transfer`` is pure: it validates the intent and encodes the
transaction without touching the network. ``submit`` signs through the Key
Vault, broadcasts, and returns a pending record immediately; confirmation is
tracked by ``await_confirmation``, either awaited or run in the background
through ``track``.
"""

import asyncio
import logging
import time
from dataclasses import replace
from decimal import Decimal
from typing import Optional

from cypherx.errors import (
    BroadcastFailed,
    InsufficientBalance,
    ProviderUnavailable,
    RpcError,
)
from cypherx.models import (
    TokenDescriptor,
    TransactionRecord,
    TransferIntent,
    TxDirection,
    TxHandle,
    TxStatus,
    UnsignedTx,
)
from cypherx.providers.chain import ChainDataProvider
from cypherx.services.balances import BalanceAggregator
from cypherx.services.catalog import TokenCatalog
from cypherx.storage.store import WalletStore
from cypherx.utils.addresses import encode_approve, encode_transfer, normalize_address
from cypherx.utils.locks import AddressLock
from cypherx.utils.units import from_smallest_unit, parse_amount, to_smallest_unit
from cypherx.vault import KeyVault, Session

logger = logging.getLogger(__name__)

NATIVE_TRANSFER_GAS = 21000
TOKEN_TRANSFER_GAS = 100000
APPROVE_GAS = 100000


class TransactionService:
    def __init__(
        self,
        vault: KeyVault,
        chain: ChainDataProvider,
        chain_id: int,
        store: Optional[WalletStore] = None,
        catalog: Optional[TokenCatalog] = None,
        balances: Optional[BalanceAggregator] = None,
        poll_interval: float = 2.0,
        confirmation_timeout: float = 300.0,
    ):
        self._vault = vault
        self._chain = chain
        self.chain_id = chain_id
        self._store = store
        self._catalog = catalog
        self._balances = balances
        self.poll_interval = poll_interval
        self.confirmation_timeout = confirmation_timeout
        self._tracking: dict[str, asyncio.Task] = {}

    # ======================
    # Construction
    # ======================

    def build_transfer(self, intent: TransferIntent, available_raw: int) -> UnsignedTx:
        """Build an unsigned native or ERC-20 transfer.

        No network calls happen here.

        Raises:
            InvalidAddress: malformed recipient
            InvalidAmount: amount <= 0 or finer than the token's decimals
            UnresolvedDecimals: token decimals unknown
            InsufficientBalance: amount exceeds ``available_raw``
        """
        recipient = normalize_address(intent.recipient)
        amount = parse_amount(intent.amount)
        token = intent.token
        decimals = token.require_decimals()
        amount_raw = to_smallest_unit(amount, decimals)

        if amount_raw > available_raw:
            raise InsufficientBalance(
                available=from_smallest_unit(available_raw, decimals),
                requested=amount,
                symbol=token.symbol,
            )

        if token.is_native:
            return UnsignedTx(
                to=recipient,
                value=amount_raw,
                data="0x",
                chain_id=self.chain_id,
                gas=NATIVE_TRANSFER_GAS,
                direction=TxDirection.SEND,
                amount=amount,
                token_symbol=token.symbol,
                token_address=token.address,
                recipient=recipient,
                description=f"Transfer {amount} {token.symbol} to {recipient[:10]}...",
            )

        return UnsignedTx(
            to=normalize_address(token.address),
            value=0,
            data=encode_transfer(recipient, amount_raw),
            chain_id=self.chain_id,
            gas=TOKEN_TRANSFER_GAS,
            direction=TxDirection.SEND,
            amount=amount,
            token_symbol=token.symbol,
            token_address=token.address,
            recipient=recipient,
            description=f"Transfer {amount} {token.symbol} to {recipient[:10]}...",
        )

    def build_approval(self, token: TokenDescriptor, spender: str, amount: Optional[int] = None) -> UnsignedTx:
        """ERC-20 approve(spender, amount). ``None`` approves the maximum."""
        spender = normalize_address(spender)
        data = encode_approve(spender) if amount is None else encode_approve(spender, amount)
        return UnsignedTx(
            to=normalize_address(token.address),
            value=0,
            data=data,
            chain_id=self.chain_id,
            gas=APPROVE_GAS,
            direction=TxDirection.APPROVE,
            amount=Decimal(0),
            token_symbol=token.symbol,
            token_address=token.address,
            recipient=spender,
            description=f"Approve {spender[:10]}... to spend {token.symbol}",
        )

    async def available_raw(self, token: TokenDescriptor, owner: str) -> int:
        """Spendable smallest units of ``token`` held by ``owner``."""
        if token.is_native:
            return await self._chain.get_balance(owner)
        return await self._chain.get_token_balance(token.address, owner)

    async def prepare_transfer(self, intent: TransferIntent, sender: str) -> UnsignedTx:
        """Resolve decimals and the live balance, then build the transfer."""
        # Cheap local checks first so malformed input never reaches the network
        normalize_address(intent.recipient)
        parse_amount(intent.amount)

        token = intent.token
        if self._catalog is not None:
            token = await self._catalog.ensure_decimals(token)
            intent = replace(intent, token=token)
        available = await self.available_raw(token, sender)
        return self.build_transfer(intent, available)

    # ======================
    # Submission
    # ======================

    async def submit(self, tx: UnsignedTx, session: Session) -> TxHandle:
        """Sign via the Key Vault and broadcast. Returns a pending record.

        Raises:
            VaultLocked: session is not the vault's open session
            BroadcastFailed: node rejected or never received the transaction
            ProviderUnavailable: nonce/gas lookup failed (nothing was signed)
        """
        sender = session.address
        async with AddressLock(sender, operation="submit"):
            nonce = tx.nonce
            if nonce is None:
                nonce = await self._chain.get_transaction_count(sender)
            gas_price = tx.gas_price
            if gas_price is None:
                gas_price = await self._chain.get_gas_price()
            filled = replace(tx, nonce=nonce, gas_price=gas_price)

            raw = await self._vault.sign(filled, session)

            try:
                tx_hash = await self._chain.send_raw_transaction(raw)
            except RpcError as e:
                logger.error(f"Broadcast rejected for {sender}: {e}")
                raise BroadcastFailed(f"Transaction rejected: {e.message}") from e
            except ProviderUnavailable as e:
                logger.error(f"Broadcast failed for {sender}: {e}")
                raise BroadcastFailed(f"Transaction could not be broadcast: {e.message}") from e

        record = TransactionRecord(
            hash=tx_hash,
            status=TxStatus.PENDING,
            direction=filled.direction,
            amount=filled.amount,
            token_symbol=filled.token_symbol,
            token_address=filled.token_address,
            sender=sender,
            recipient=filled.recipient or filled.to,
        )
        logger.info(f"Broadcast {filled.direction.value} tx {tx_hash} from {sender} (nonce {nonce})")
        if self._store is not None:
            await self._store.add_transaction(record)
        return TxHandle(hash=tx_hash, record=record, tx=filled)

    async def await_confirmation(
        self,
        handle: TxHandle,
        timeout: Optional[float] = None,
    ) -> TransactionRecord:
        """Poll for the receipt until the transaction is confirmed or failed.

        Provider outages while polling are logged and polling resumes. If the
        timeout passes first, the record is returned still pending.
        """
        record = handle.record
        if record.is_terminal:
            return record

        timeout = self.confirmation_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        while True:
            try:
                receipt = await self._chain.get_transaction_receipt(handle.hash)
            except ProviderUnavailable as e:
                logger.warning(f"Receipt poll failed for {handle.hash}, retrying: {e}")
                receipt = None

            if receipt is not None:
                if record.is_terminal:
                    return record
                status = receipt.get("status")
                if status is not None and int(status, 16) == 1:
                    record.transition(TxStatus.CONFIRMED)
                else:
                    record.transition(TxStatus.FAILED, error="Transaction reverted")
                logger.info(f"Transaction {handle.hash} {record.status.value}")
                await self._persist_status(record)
                await self._after_terminal(record)
                return record

            if time.monotonic() >= deadline:
                logger.warning(f"Transaction {handle.hash} still pending after {timeout}s")
                return record
            await asyncio.sleep(self.poll_interval)

    async def _persist_status(self, record: TransactionRecord) -> None:
        if self._store is not None:
            await self._store.update_transaction(record)

    async def _after_terminal(self, record: TransactionRecord) -> None:
        if self._balances is not None:
            await self._balances.refresh(record.sender)

    def track(self, handle: TxHandle) -> asyncio.Task:
        """Follow confirmation in the background. One task per hash."""
        task = self._tracking.get(handle.hash)
        if task is not None:
            return task

        task = asyncio.create_task(self.await_confirmation(handle), name=f"confirm-{handle.hash}")
        self._tracking[handle.hash] = task

        def _done(finished: asyncio.Task) -> None:
            self._tracking.pop(handle.hash, None)
            if not finished.cancelled() and finished.exception() is not None:
                logger.error(f"Confirmation tracking failed for {handle.hash}: {finished.exception()}")

        task.add_done_callback(_done)
        return task

    @property
    def tracking(self) -> list[str]:
        """Hashes currently followed in the background."""
        return list(self._tracking)

    async def stop_tracking(self) -> None:
        tasks = list(self._tracking.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tracking.clear()

    # ======================
    # Named operation
    # ======================

    async def send(
        self,
        intent: TransferIntent,
        session: Session,
        wait: bool = False,
    ) -> TxHandle:
        """Validate, build, sign and broadcast a transfer. Never retried."""
        tx = await self.prepare_transfer(intent, session.address)
        handle = await self.submit(tx, session)
        if self._catalog is not None:
            await self._catalog.record_usage(intent.token)
        if wait:
            await self.await_confirmation(handle)
        else:
            self.track(handle)
        return handle

    # ======================
    # Activity
    # ======================

    async def history(self, limit: int = 50) -> list[TransactionRecord]:
        if self._store is None:
            return []
        return await self._store.list_transactions(limit=limit)

    async def get_record(self, tx_hash: str) -> Optional[TransactionRecord]:
        if self._store is None:
            return None
        return await self._store.get_transaction(tx_hash)

    async def resume_pending(self) -> list[asyncio.Task]:
        """Restart confirmation tracking for records left pending."""
        if self._store is None:
            return []
        pending = await self._store.list_transactions(limit=100, status=TxStatus.PENDING)
        tasks = []
        for record in pending:
            handle = TxHandle(
                hash=record.hash,
                record=record,
                tx=UnsignedTx(
                    to=record.recipient,
                    value=0,
                    data="0x",
                    chain_id=self.chain_id,
                    gas=0,
                    direction=record.direction,
                    amount=record.amount,
                    token_symbol=record.token_symbol,
                    token_address=record.token_address,
                    recipient=record.recipient,
                ),
            )
            tasks.append(self.track(handle))
        if tasks:
            logger.info(f"Resumed confirmation tracking for {len(tasks)} pending transaction(s)")
        return tasks
