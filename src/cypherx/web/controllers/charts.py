"""Chart endpoint. Always answers; an empty series means no data."""

from typing import Optional

from fastapi import APIRouter, Depends

from cypherx.core import WalletCore, get_core
from cypherx.models import NATIVE_TOKEN, Timeframe, TokenDescriptor
from cypherx.utils.addresses import is_native, normalize_address
from cypherx.web.contracts.charts import ChartSeriesResponse

router = APIRouter(prefix="/charts", tags=["charts"])


@router.get("/{token_address}", response_model=ChartSeriesResponse)
async def get_chart(
    token_address: str,
    timeframe: Timeframe = Timeframe.H1,
    symbol: Optional[str] = None,
    core: WalletCore = Depends(get_core),
) -> ChartSeriesResponse:
    if is_native(token_address):
        token = NATIVE_TOKEN
    else:
        token = TokenDescriptor(address=normalize_address(token_address), symbol=symbol or "")
    series = await core.charts.fetch_series(token, timeframe)
    return ChartSeriesResponse.from_series(series)
