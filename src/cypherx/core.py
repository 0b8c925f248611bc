"""Wallet core: wires the components and exposes the named operations.

Send, swap and receive are plain coroutines on ``WalletCore`` so they can be
driven by the HTTP API, a script or a test without any view state.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cypherx.config import Settings, get_settings
from cypherx.errors import NoWallet
from cypherx.models import BalanceSnapshot, SwapIntent, TokenDescriptor, TransferIntent, TxHandle
from cypherx.providers import ChainDataProvider, MarketDataProvider, ZeroExClient
from cypherx.services import (
    BalanceAggregator,
    ChartSynthesizer,
    SwapDraft,
    SwapEngine,
    TokenCatalog,
    TransactionService,
)
from cypherx.storage.store import WalletStore
from cypherx.vault import KeyVault

logger = logging.getLogger(__name__)


@dataclass
class ReceiveInfo:
    """What a sender needs to pay this wallet."""

    address: str
    chain_id: int
    chain_name: str
    snapshot: Optional[BalanceSnapshot] = None


class WalletCore:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        rpc_transport: Optional[httpx.AsyncBaseTransport] = None,
        market_transport: Optional[httpx.AsyncBaseTransport] = None,
        aggregator_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings

        self.store = WalletStore(s.storage_namespace, session_factory)
        self.vault = KeyVault(self.store, kdf_iterations=s.kdf_iterations)

        self.chain = ChainDataProvider(s.rpc_url, timeout=s.http_timeout, transport=rpc_transport)
        self.market = MarketDataProvider(
            dexscreener_url=s.dexscreener_api_url,
            geckoterminal_url=s.geckoterminal_api_url,
            coingecko_url=s.coingecko_api_url,
            network=s.chain_name,
            timeout=s.http_timeout,
            transport=market_transport,
        )
        self.aggregator = ZeroExClient(
            chain_id=s.chain_id,
            api_key=s.zeroex_api_key,
            base_url=s.zeroex_api_url,
            fee_recipient=s.zeroex_fee_recipient,
            fee_bps=s.zeroex_fee_bps,
            timeout=s.http_timeout,
            transport=aggregator_transport,
        )

        self.catalog = TokenCatalog(
            self.market,
            self.chain,
            store=self.store,
            recent_limit=s.recent_tokens_limit,
            search_limit=s.token_search_limit,
            chain_name=s.chain_name,
            chain_id=s.chain_id,
        )
        self.balances = BalanceAggregator(
            self.chain,
            catalog=self.catalog,
            refresh_interval=s.balance_refresh_interval,
            holdings_limit=s.holdings_limit,
        )
        self.transactions = TransactionService(
            self.vault,
            self.chain,
            chain_id=s.chain_id,
            store=self.store,
            catalog=self.catalog,
            balances=self.balances,
            poll_interval=s.confirmation_poll_interval,
            confirmation_timeout=s.confirmation_timeout,
        )
        self.swaps = SwapEngine(
            self.aggregator,
            self.transactions,
            catalog=self.catalog,
            quote_ttl_seconds=s.quote_ttl_seconds,
            gas_buffer_percent=s.gas_buffer_percent,
        )
        self.charts = ChartSynthesizer(self.market, synthetic_enabled=s.synthetic_charts_enabled)

    async def start(self) -> None:
        """Restore wallet and recent tokens from local storage."""
        wallet = await self.vault.load()
        await self.catalog.load()
        if wallet is not None:
            await self.transactions.resume_pending()
        logger.info(f"Wallet core started on {self.settings.chain_name} (chain {self.settings.chain_id})")

    async def close(self) -> None:
        await self.transactions.stop_tracking()
        await self.balances.stop_all()
        await self.vault.lock()
        logger.info("Wallet core stopped")

    # ======================
    # Named operations
    # ======================

    async def send(
        self,
        token: TokenDescriptor,
        amount,
        recipient: str,
        wait: bool = False,
    ) -> TxHandle:
        """Transfer ``amount`` of ``token`` from the unlocked wallet."""
        session = self.vault.require_session()
        intent = TransferIntent.create(token, amount, recipient)
        return await self.transactions.send(intent, session, wait=wait)

    async def swap(
        self,
        sell_token: TokenDescriptor,
        buy_token: TokenDescriptor,
        sell_amount,
        slippage_bps: Optional[int] = None,
    ) -> TxHandle:
        """Firm-quote and execute a swap from the unlocked wallet."""
        session = self.vault.require_session()
        intent = SwapIntent(
            sell_token=sell_token,
            buy_token=buy_token,
            sell_amount=Decimal(str(sell_amount)),
            slippage_bps=self.settings.default_slippage_bps if slippage_bps is None else slippage_bps,
        )
        return await self.swaps.swap(intent, session)

    def swap_draft(self, sell_token: TokenDescriptor, buy_token: TokenDescriptor) -> SwapDraft:
        return SwapDraft(
            self.swaps,
            sell_token,
            buy_token,
            slippage_bps=self.settings.default_slippage_bps,
        )

    async def receive(self) -> ReceiveInfo:
        """Wallet address plus the latest cached balances. No signing needed."""
        wallet = self.vault.wallet
        if wallet is None:
            raise NoWallet()
        return ReceiveInfo(
            address=wallet.address,
            chain_id=self.settings.chain_id,
            chain_name=self.settings.chain_name,
            snapshot=self.balances.latest(wallet.address),
        )


_core: Optional[WalletCore] = None


def get_core() -> WalletCore:
    """Get the process-wide wallet core."""
    global _core
    if _core is None:
        _core = WalletCore()
    return _core


def reset_core() -> None:
    global _core
    _core = None
