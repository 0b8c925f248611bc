"""Token Catalog & Resolver.

Keeps the most-recently-used token list (native asset pinned), resolves
arbitrary addresses or free-text queries through the market-data provider,
resolves decimals before any amount math, and walks the logo fallback chain.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, Optional
from urllib.parse import quote

from cypherx.errors import UnresolvedDecimals, WalletError
from cypherx.models import NATIVE_TOKEN, TokenDescriptor
from cypherx.providers.chain import ChainDataProvider
from cypherx.providers.market import MarketDataProvider, TokenListing
from cypherx.storage.store import WalletStore
from cypherx.utils.addresses import is_valid_address

logger = logging.getLogger(__name__)

WETH_ADDRESS = "0x4200000000000000000000000000000000000006"

# Well-known Base tokens; consulted before any on-chain decimals() call
KNOWN_DECIMALS = {
    "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913": 6,  # USDC
    "0xfde4c96c8593536e31f229ea8f37b2ada2699bb2": 6,  # USDT
    "0xcbb7c0000ab88b473b1f5afd9ef808440eed33bf": 8,  # cbBTC
    WETH_ADDRESS: 18,  # WETH
}

PLACEHOLDER_LOGO_URL = (
    "https://ui-avatars.com/api/?name={symbol}&background=1f2937&color=60a5fa&size=32"
)

MIN_QUERY_LENGTH = 2


class TokenCatalog:
    """Recency cache plus metadata resolution for tokens."""

    def __init__(
        self,
        market: MarketDataProvider,
        chain: ChainDataProvider,
        store: Optional[WalletStore] = None,
        recent_limit: int = 10,
        search_limit: int = 20,
        chain_name: str = "base",
        chain_id: int = 8453,
    ):
        self._market = market
        self._chain = chain
        self._store = store
        self.recent_limit = recent_limit
        self.search_limit = search_limit
        self._chain_ids = {chain_name.lower(), str(chain_id)}
        self._recent: list[TokenDescriptor] = []  # never contains the native asset
        self._recent_lock = asyncio.Lock()
        self._decimals: dict[str, int] = dict(KNOWN_DECIMALS)
        self._decimals[NATIVE_TOKEN.key] = NATIVE_TOKEN.decimals

    # ======================
    # Recency cache
    # ======================

    async def load(self) -> list[TokenDescriptor]:
        """Restore the recency cache from local storage."""
        if self._store is None:
            return self.recent()
        stored = await self._store.load_recent_tokens()
        async with self._recent_lock:
            self._recent = []
            for token in stored:
                if token.is_native or any(t.key == token.key for t in self._recent):
                    continue
                if token.decimals is not None:
                    self._decimals.setdefault(token.key, token.decimals)
                self._recent.append(token)
            del self._recent[self._max_recent:]
        return self.recent()

    @property
    def _max_recent(self) -> int:
        # The pinned native asset occupies one slot
        return max(self.recent_limit - 1, 0)

    def recent(self) -> list[TokenDescriptor]:
        """Native asset first, then most-recently-used tokens."""
        return [NATIVE_TOKEN, *self._recent]

    async def record_usage(self, token: TokenDescriptor) -> list[TokenDescriptor]:
        """Move ``token`` to the front, evicting the least recently used."""
        if token.is_native:
            return self.recent()
        async with self._recent_lock:
            updated = [token] + [t for t in self._recent if t.key != token.key]
            evicted = updated[self._max_recent:]
            updated = updated[: self._max_recent]
            if self._store is not None:
                await self._store.save_recent_tokens(updated)
            self._recent = updated
        if token.decimals is not None:
            self._decimals.setdefault(token.key, token.decimals)
        for old in evicted:
            logger.debug(f"Evicted {old.symbol} from recent tokens")
        return self.recent()

    # ======================
    # Resolution
    # ======================

    def _on_chain(self, listing: TokenListing) -> bool:
        return listing.chain_id.lower() in self._chain_ids

    def _with_known_decimals(self, token: TokenDescriptor) -> TokenDescriptor:
        if token.decimals is None and token.key in self._decimals:
            return token.with_decimals(self._decimals[token.key])
        return token

    async def resolve(self, query: str) -> list[TokenDescriptor]:
        """Direct lookup for a contract address, fuzzy search otherwise.

        Returns [] when nothing matches. Provider outages raise
        ProviderUnavailable so they are never mistaken for "not found".
        """
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []

        if is_valid_address(query):
            if query.lower() == NATIVE_TOKEN.key:
                return [NATIVE_TOKEN]
            listings = await self._market.get_token_listings(query)
            for listing in listings:
                if self._on_chain(listing):
                    return [self._with_known_decimals(listing.token)]
            return []

        results: list[TokenDescriptor] = []
        seen: set[str] = set()
        for listing in await self._market.search(query):
            if not self._on_chain(listing) or listing.token.key in seen:
                continue
            seen.add(listing.token.key)
            results.append(self._with_known_decimals(listing.token))
            if len(results) >= self.search_limit:
                break
        logger.debug(f"Token search '{query}': {len(results)} result(s)")
        return results

    def remember_decimals(self, address: str, decimals: int) -> None:
        self._decimals[address.lower()] = decimals

    async def ensure_decimals(self, token: TokenDescriptor) -> TokenDescriptor:
        """Return ``token`` with decimals resolved.

        Order: descriptor, cache/known table, on-chain decimals().

        Raises:
            UnresolvedDecimals: the contract does not report decimals
        """
        if token.decimals is not None:
            return token
        if token.key in self._decimals:
            return token.with_decimals(self._decimals[token.key])

        decimals = await self._chain.get_decimals(token.address)
        if decimals is None:
            raise UnresolvedDecimals(
                f"Could not determine decimals for {token.symbol or token.address}"
            )
        self._decimals[token.key] = decimals
        logger.debug(f"Resolved decimals for {token.symbol}: {decimals}")
        return token.with_decimals(decimals)

    # ======================
    # Logos
    # ======================

    @staticmethod
    def placeholder_logo(symbol: str) -> str:
        return PLACEHOLDER_LOGO_URL.format(symbol=quote(symbol or "?"))

    async def logo_candidates(self, token: TokenDescriptor) -> AsyncIterator[str]:
        """Yield logo URLs in fallback order, each fetched only when asked for.

        Descriptor logo -> provider logo -> provider CDN -> placeholder.
        """
        if token.logo_url:
            yield token.logo_url
        if not token.is_native:
            try:
                provider_logo = await self._market.get_logo_url(token.address)
            except WalletError as e:
                logger.warning(f"Logo lookup failed for {token.address}: {e}")
                provider_logo = None
            if provider_logo and provider_logo != token.logo_url:
                yield provider_logo
            yield self._market.static_logo_url(token.address)
        yield self.placeholder_logo(token.symbol)

    async def resolve_logo(
        self,
        token: TokenDescriptor,
        accept: Optional[Callable[[str], Awaitable[bool]]] = None,
    ) -> str:
        """First candidate ``accept`` approves (default: the first one).

        Never raises: a failing step falls through to the next one and the
        placeholder is the last resort.
        """
        async with aclosing(self.logo_candidates(token)) as candidates:
            async for url in candidates:
                if accept is None:
                    return url
                try:
                    if await accept(url):
                        return url
                except Exception as e:
                    logger.debug(f"Logo candidate rejected {url}: {e}")
        return self.placeholder_logo(token.symbol)
