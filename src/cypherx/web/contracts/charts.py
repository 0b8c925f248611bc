"""Chart series contracts."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from cypherx.models import ChartSeries, Timeframe


class PricePointModel(BaseModel):
    timestamp: int
    price: Decimal
    volume: Optional[Decimal] = None

    class Config:
        json_encoders = {Decimal: str}


class ChartSeriesResponse(BaseModel):
    """Price series for display.

    ``synthetic`` series are generated from the current price and must be
    labeled as illustrative by the client.
    """

    success: bool = Field(default=True)
    token_address: str
    timeframe: Timeframe
    synthetic: bool
    source: str
    points: list[PricePointModel] = Field(default_factory=list)

    class Config:
        json_encoders = {Decimal: str}

    @classmethod
    def from_series(cls, series: ChartSeries) -> "ChartSeriesResponse":
        return cls(
            token_address=series.token_address,
            timeframe=series.timeframe,
            synthetic=series.synthetic,
            source=series.source,
            points=[
                PricePointModel(timestamp=p.timestamp, price=p.price, volume=p.volume)
                for p in series.points
            ],
        )
