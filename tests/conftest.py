"""Pytest configuration and fixtures."""

import asyncio
import os
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "true"
os.environ["KDF_ITERATIONS"] = "1000"

from cypherx.errors import ProviderUnavailable, RpcError
from cypherx.models import PriceInfo, PricePoint, TokenDescriptor
from cypherx.providers.market import TokenListing
from cypherx.services import BalanceAggregator, TokenCatalog, TransactionService
from cypherx.storage.database import create_engine_for, create_tables, make_session_factory
from cypherx.storage.store import WalletStore
from cypherx.utils.locks import clear_address_locks
from cypherx.vault import KeyVault

TEST_PASSWORD = "correct horse battery"
TEST_ITERATIONS = 1000

RECIPIENT = "0x000000000000000000000000000000000000dEaD"
USDC = TokenDescriptor(
    address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    symbol="USDC",
    name="USD Coin",
    decimals=6,
)
DEGEN = TokenDescriptor(
    address="0x4ed4e862860bed51a9570b96d89af5e1b0efefed",
    symbol="DEGEN",
    name="Degen",
)


class FakeChain:
    """In-memory chain-data provider. Records every call it receives."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.native: dict[str, int] = {}
        self.tokens: dict[tuple[str, str], int] = {}  # (token, owner) -> raw
        self.indexed: dict[str, list[tuple[str, int]]] = {}
        self.metadata: dict[str, dict] = {}
        self.decimals: dict[str, Optional[int]] = {}
        self.receipts: dict[str, dict] = {}
        self.sent: list[bytes] = []
        self.nonce = 0
        self.gas_price = 1_000_000_000
        self.fail_with: Optional[Exception] = None
        self.broadcast_error: Optional[Exception] = None
        self.delay = 0.0

    async def _record(self, *call):
        self.calls.append(call)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    async def get_balance(self, address: str) -> int:
        await self._record("get_balance", address)
        return self.native.get(address.lower(), 0)

    async def get_token_balance(self, token: str, owner: str) -> int:
        await self._record("get_token_balance", token, owner)
        return self.tokens.get((token.lower(), owner.lower()), 0)

    async def get_token_balances(self, address: str) -> list[tuple[str, int]]:
        await self._record("get_token_balances", address)
        return list(self.indexed.get(address.lower(), []))

    async def get_token_metadata(self, addresses: list[str]) -> dict[str, dict]:
        await self._record("get_token_metadata", tuple(addresses))
        return {a.lower(): self.metadata[a.lower()] for a in addresses if a.lower() in self.metadata}

    async def get_decimals(self, token: str) -> Optional[int]:
        await self._record("get_decimals", token)
        return self.decimals.get(token.lower())

    async def get_transaction_count(self, address: str) -> int:
        await self._record("get_transaction_count", address)
        return self.nonce

    async def get_gas_price(self) -> int:
        await self._record("get_gas_price")
        return self.gas_price

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        self.calls.append(("send_raw_transaction",))
        if self.broadcast_error is not None:
            raise self.broadcast_error
        self.sent.append(raw_tx)
        self.nonce += 1
        return "0x" + f"{len(self.sent):064x}"

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        await self._record("get_transaction_receipt", tx_hash)
        return self.receipts.get(tx_hash)


class FakeMarket:
    """In-memory market-data provider."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.search_results: list[TokenListing] = []
        self.listings: dict[str, list[TokenListing]] = {}
        self.logos: dict[str, str] = {}
        self.prices: dict[str, PriceInfo] = {}
        self.native_price: Optional[PriceInfo] = None
        self.native_history: list[PricePoint] = []
        self.pools: dict[str, str] = {}
        self.ohlcv: dict[str, list[PricePoint]] = {}
        self.fail_with: Optional[Exception] = None

    def _record(self, *call):
        self.calls.append(call)
        if self.fail_with is not None:
            raise self.fail_with

    async def search(self, query: str) -> list[TokenListing]:
        self._record("search", query)
        return list(self.search_results)

    async def get_token_listings(self, address: str) -> list[TokenListing]:
        self._record("get_token_listings", address)
        return list(self.listings.get(address.lower(), []))

    async def get_logo_url(self, address: str) -> Optional[str]:
        self._record("get_logo_url", address)
        return self.logos.get(address.lower())

    def static_logo_url(self, address: str) -> str:
        return f"https://cdn.test/{address.lower()}.png"

    async def get_token_price(self, address: str) -> Optional[PriceInfo]:
        self._record("get_token_price", address)
        return self.prices.get(address.lower())

    async def get_native_price(self) -> Optional[PriceInfo]:
        self._record("get_native_price")
        return self.native_price

    async def get_native_history(self, timeframe) -> list[PricePoint]:
        self._record("get_native_history", timeframe)
        return list(self.native_history)

    async def get_top_pool(self, address: str) -> Optional[str]:
        self._record("get_top_pool", address)
        return self.pools.get(address.lower())

    async def get_pool_ohlcv(self, pool_address: str, timeframe) -> list[PricePoint]:
        self._record("get_pool_ohlcv", pool_address, timeframe)
        return list(self.ohlcv.get(pool_address, []))


def listing(token: TokenDescriptor, chain_id: str = "base", price: Optional[str] = None) -> TokenListing:
    return TokenListing(
        token=token,
        chain_id=chain_id,
        price_usd=Decimal(price) if price else None,
    )


def provider_down() -> ProviderUnavailable:
    return ProviderUnavailable("RPC node is unreachable", provider="rpc")


def rpc_rejected(message: str) -> RpcError:
    return RpcError(message, rpc_code=-32000)


@pytest.fixture(autouse=True)
def reset_locks():
    """Address locks are process-global; start every test clean."""
    clear_address_locks()
    yield
    clear_address_locks()


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_engine_for("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def store(session_factory) -> WalletStore:
    return WalletStore("test", session_factory)


@pytest.fixture
def vault(store) -> KeyVault:
    return KeyVault(store, kdf_iterations=TEST_ITERATIONS)


@pytest_asyncio.fixture
async def unlocked(vault):
    """Vault with a freshly created wallet and its open Session."""
    await vault.create(TEST_PASSWORD)
    return vault, vault.session


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def market() -> FakeMarket:
    return FakeMarket()


@pytest.fixture
def catalog(market, chain, store) -> TokenCatalog:
    return TokenCatalog(market, chain, store=store)


@pytest.fixture
def balances(chain, catalog) -> BalanceAggregator:
    return BalanceAggregator(chain, catalog=catalog, refresh_interval=0.01)


@pytest_asyncio.fixture
async def tx_service(vault, chain, store, catalog, balances):
    service = TransactionService(
        vault,
        chain,
        chain_id=8453,
        store=store,
        catalog=catalog,
        balances=balances,
        poll_interval=0.01,
        confirmation_timeout=0.5,
    )

    yield service

    await service.stop_tracking()
