"""Chart/Price Synthesizer.

Real history first (GeckoTerminal pool candles, CoinGecko for the native
asset). When none exists a synthetic series is built around the current
price, with its drift biased by the 24h change. Synthetic series are flagged
``synthetic=True`` and are for chart display only.
"""

import logging
import random
import time
from decimal import Decimal
from typing import Optional

from cypherx.errors import WalletError
from cypherx.models import (
    TIMEFRAMES,
    ChartSeries,
    PriceInfo,
    PricePoint,
    Timeframe,
    TokenDescriptor,
)
from cypherx.providers.market import MarketDataProvider
from cypherx.services.catalog import WETH_ADDRESS

logger = logging.getLogger(__name__)

# Oscillation bounds relative to the current price
MIN_SWING = Decimal("0.02")
MAX_SWING = Decimal("0.5")
NOISE_RATIO = Decimal("0.3")


def swing_bound(change_24h: Optional[Decimal]) -> Decimal:
    """Maximum relative deviation of any synthetic point from the price."""
    if change_24h is None:
        return MIN_SWING
    bound = abs(change_24h) / 100 * Decimal("1.5")
    return min(MAX_SWING, max(MIN_SWING, bound))


def synthesize_series(
    seed: str,
    price: Decimal,
    change_24h: Optional[Decimal],
    timeframe: Timeframe,
    now: Optional[int] = None,
) -> list[PricePoint]:
    """Deterministic bounded series ending exactly at ``price``.

    The series starts where the 24h change says the price was and drifts
    toward the current price, with noise that never leaves the swing bound.
    """
    spec = TIMEFRAMES[timeframe]
    now = int(time.time()) if now is None else now
    bound = swing_bound(change_24h)
    low = price * (1 - bound)
    high = price * (1 + bound)

    start = price
    if change_24h is not None and change_24h > -100:
        start = price / (1 + change_24h / 100)
    start = min(high, max(low, start))

    rng = random.Random(f"{seed.lower()}:{timeframe.value}")
    noise = price * bound * NOISE_RATIO
    count = spec.points
    points = []
    for i in range(count):
        timestamp = now - (count - 1 - i) * spec.step_seconds
        if i == count - 1:
            value = price
        else:
            progress = Decimal(i) / Decimal(count - 1)
            trend = start + (price - start) * progress
            jitter = Decimal(str(rng.uniform(-1.0, 1.0))) * noise if i else Decimal(0)
            value = min(high, max(low, trend + jitter))
        points.append(PricePoint(timestamp=timestamp, price=value))
    return points


class ChartSynthesizer:
    def __init__(self, market: MarketDataProvider, synthetic_enabled: bool = True):
        self._market = market
        self.synthetic_enabled = synthetic_enabled

    async def _history(self, token: TokenDescriptor, timeframe: Timeframe) -> tuple[list[PricePoint], str]:
        lookup = WETH_ADDRESS if token.is_native else token.address
        pool = await self._market.get_top_pool(lookup)
        if pool:
            points = await self._market.get_pool_ohlcv(pool, timeframe)
            if points:
                return points, "geckoterminal"
        if token.is_native:
            points = await self._market.get_native_history(timeframe)
            if points:
                return points, "coingecko"
        return [], "none"

    async def _current_price(self, token: TokenDescriptor) -> Optional[PriceInfo]:
        if token.is_native:
            return await self._market.get_native_price()
        return await self._market.get_token_price(token.address)

    async def fetch_series(
        self,
        token: TokenDescriptor,
        timeframe: Timeframe = Timeframe.H1,
        current_price: Optional[Decimal] = None,
        change_24h: Optional[Decimal] = None,
    ) -> ChartSeries:
        """Best available series for ``token``. Never raises.

        Both paths failing yields an empty series.
        """
        series = ChartSeries(token_address=token.address, timeframe=timeframe)

        try:
            points, source = await self._history(token, timeframe)
        except WalletError as e:
            logger.warning(f"Price history unavailable for {token.symbol}: {e}")
            points, source = [], "none"
        if points:
            series.points = points[-TIMEFRAMES[timeframe].points:]
            series.source = source
            return series

        if not self.synthetic_enabled:
            return series

        if current_price is None:
            try:
                info = await self._current_price(token)
            except WalletError as e:
                logger.warning(f"Current price unavailable for {token.symbol}: {e}")
                info = None
            if info is not None:
                current_price = info.price_usd
                if change_24h is None:
                    change_24h = info.change_24h

        if current_price is None or current_price <= 0:
            logger.info(f"No chart data for {token.symbol} ({timeframe.value})")
            return series

        series.points = synthesize_series(token.address, current_price, change_24h, timeframe)
        series.synthetic = True
        series.source = "synthetic"
        logger.debug(f"Synthetic {timeframe.value} chart for {token.symbol}: {len(series)} points")
        return series
