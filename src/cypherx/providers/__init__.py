"""External provider clients: chain data, market data, swap aggregator."""

from cypherx.providers.aggregator import ZeroExClient
from cypherx.providers.base import HTTPProvider
from cypherx.providers.chain import ChainDataProvider
from cypherx.providers.market import MarketDataProvider, TokenListing

__all__ = [
    "HTTPProvider",
    "ChainDataProvider",
    "MarketDataProvider",
    "TokenListing",
    "ZeroExClient",
]
