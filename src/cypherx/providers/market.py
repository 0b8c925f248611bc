"""Market-data provider: token search/metadata, prices and price history.

DexScreener for search, logos and token prices; GeckoTerminal for pool OHLCV;
CoinGecko for the native asset's price and history.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from cypherx.models import PriceInfo, PricePoint, TIMEFRAMES, Timeframe, TokenDescriptor
from cypherx.providers.base import HTTPProvider
from cypherx.utils.addresses import same_address

logger = logging.getLogger(__name__)

COINGECKO_NATIVE_ID = "ethereum"


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


@dataclass
class TokenListing:
    """One market listing of a token (a DexScreener pair's base token)."""

    token: TokenDescriptor
    chain_id: str
    price_usd: Optional[Decimal] = None
    change_24h: Optional[Decimal] = None
    pair_address: Optional[str] = None


class MarketDataProvider(HTTPProvider):
    name = "market"

    def __init__(
        self,
        dexscreener_url: str = "https://api.dexscreener.com",
        geckoterminal_url: str = "https://api.geckoterminal.com/api/v2",
        coingecko_url: str = "https://api.coingecko.com/api/v3",
        network: str = "base",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.dexscreener_url = dexscreener_url.rstrip("/")
        self.geckoterminal_url = geckoterminal_url.rstrip("/")
        self.coingecko_url = coingecko_url.rstrip("/")
        self.network = network

    # ======================
    # DexScreener
    # ======================

    @staticmethod
    def _listing_from_pair(pair: dict) -> Optional[TokenListing]:
        base = pair.get("baseToken") or {}
        address = base.get("address")
        if not address:
            return None
        info = pair.get("info") or {}
        logo = info.get("imageUrl") or base.get("logoURI") or base.get("logo")
        return TokenListing(
            token=TokenDescriptor(
                address=address,
                symbol=base.get("symbol") or "",
                name=base.get("name") or "",
                logo_url=logo,
            ),
            chain_id=str(pair.get("chainId") or ""),
            price_usd=_decimal(pair.get("priceUsd")),
            change_24h=_decimal((pair.get("priceChange") or {}).get("h24")),
            pair_address=pair.get("pairAddress"),
        )

    async def search(self, query: str) -> list[TokenListing]:
        """Fuzzy search across all chains, in provider order."""
        data = await self._get_json(f"{self.dexscreener_url}/latest/dex/search", params={"q": query})
        pairs = (data or {}).get("pairs") or []
        listings = [self._listing_from_pair(pair) for pair in pairs if isinstance(pair, dict)]
        return [listing for listing in listings if listing is not None]

    async def get_token_listings(self, address: str) -> list[TokenListing]:
        """Listings whose base token is ``address`` (empty when unknown)."""
        data = await self._get_json(f"{self.dexscreener_url}/latest/dex/tokens/{address}")
        pairs = (data or {}).get("pairs") or []
        listings = [self._listing_from_pair(pair) for pair in pairs if isinstance(pair, dict)]
        return [
            listing
            for listing in listings
            if listing is not None and same_address(listing.token.address, address)
        ]

    async def get_logo_url(self, address: str) -> Optional[str]:
        for listing in await self.get_token_listings(address):
            if listing.token.logo_url:
                return listing.token.logo_url
        return None

    def static_logo_url(self, address: str) -> str:
        return f"https://dd.dexscreener.com/ds-data/tokens/{self.network}/{address.lower()}.png"

    async def get_token_price(self, address: str) -> Optional[PriceInfo]:
        for listing in await self.get_token_listings(address):
            if listing.price_usd is not None:
                return PriceInfo(price_usd=listing.price_usd, change_24h=listing.change_24h)
        return None

    # ======================
    # CoinGecko (native asset)
    # ======================

    async def get_native_price(self) -> Optional[PriceInfo]:
        data = await self._get_json(
            f"{self.coingecko_url}/simple/price",
            params={
                "ids": COINGECKO_NATIVE_ID,
                "vs_currencies": "usd",
                "include_24hr_change": "true",
            },
        )
        entry = (data or {}).get(COINGECKO_NATIVE_ID) or {}
        price = _decimal(entry.get("usd"))
        if price is None:
            return None
        return PriceInfo(price_usd=price, change_24h=_decimal(entry.get("usd_24h_change")))

    async def get_native_history(self, timeframe: Timeframe) -> list[PricePoint]:
        """Native price history, oldest first."""
        spec = TIMEFRAMES[timeframe]
        data = await self._get_json(
            f"{self.coingecko_url}/coins/{COINGECKO_NATIVE_ID}/market_chart",
            params={"vs_currency": "usd", "days": spec.days},
        )
        points = []
        for row in (data or {}).get("prices") or []:
            if not isinstance(row, (list, tuple)) or len(row) < 2:
                continue
            price = _decimal(row[1])
            if price is None:
                continue
            points.append(PricePoint(timestamp=int(row[0]) // 1000, price=price))
        points.sort(key=lambda p: p.timestamp)
        return points

    # ======================
    # GeckoTerminal
    # ======================

    async def get_top_pool(self, address: str) -> Optional[str]:
        data = await self._get_json(
            f"{self.geckoterminal_url}/networks/{self.network}/tokens/{address.lower()}/pools",
            params={"page": 1},
        )
        pools = (data or {}).get("data") or []
        if not pools:
            return None
        top = pools[0]
        pool_address = (top.get("attributes") or {}).get("address")
        if not pool_address and isinstance(top.get("id"), str):
            pool_address = top["id"].split("_", 1)[-1]
        return pool_address or None

    async def get_pool_ohlcv(self, pool_address: str, timeframe: Timeframe) -> list[PricePoint]:
        """Closing prices of the pool's candles, oldest first."""
        spec = TIMEFRAMES[timeframe]
        data = await self._get_json(
            f"{self.geckoterminal_url}/networks/{self.network}/pools/{pool_address}/ohlcv/{spec.unit}",
            params={"aggregate": spec.aggregate, "limit": spec.points, "currency": "usd"},
        )
        attributes = ((data or {}).get("data") or {}).get("attributes") or {}
        points = []
        for row in attributes.get("ohlcv_list") or []:
            # [timestamp, open, high, low, close, volume]
            if not isinstance(row, (list, tuple)) or len(row) < 5:
                continue
            close = _decimal(row[4])
            if close is None:
                continue
            volume = _decimal(row[5]) if len(row) > 5 else None
            points.append(PricePoint(timestamp=int(row[0]), price=close, volume=volume))
        points.sort(key=lambda p: p.timestamp)
        return points
