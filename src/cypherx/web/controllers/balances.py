"""Balance endpoints.

Provider faults come back as 503 with a retryable body; an address with no
token holdings gets an empty list.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from cypherx.core import WalletCore, get_core
from cypherx.models import ProviderFailure
from cypherx.web.contracts.balances import (
    HoldingsResponse,
    ProviderFailureResponse,
    TokenBalance,
    WalletBalanceResponse,
)

router = APIRouter(prefix="/balances", tags=["balances"])


def _failure(result: ProviderFailure) -> JSONResponse:
    body = ProviderFailureResponse(
        address=result.address,
        operation=result.operation,
        error=result.error,
        retryable=result.retryable,
    )
    return JSONResponse(status_code=503, content=body.model_dump())


@router.get("/{address}", response_model=WalletBalanceResponse)
async def get_balances(
    address: str,
    include_holdings: bool = True,
    core: WalletCore = Depends(get_core),
):
    """Fresh balance snapshot for ``address``."""
    result = await core.balances.refresh(address, include_holdings=include_holdings)
    if isinstance(result, ProviderFailure):
        return _failure(result)
    return WalletBalanceResponse.from_snapshot(result, chain_id=core.settings.chain_id)


@router.get("/{address}/holdings", response_model=HoldingsResponse)
async def get_holdings(address: str, core: WalletCore = Depends(get_core)):
    result = await core.balances.fetch_holdings(address)
    if isinstance(result, ProviderFailure):
        return _failure(result)
    return HoldingsResponse(
        address=address,
        holdings=[TokenBalance.from_holding(h) for h in result],
    )
