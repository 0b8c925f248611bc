"""Swap endpoints.

``/price`` is indicative and never executable. ``/quote`` is firm and issued
to the unlocked wallet. ``/execute`` fetches its own firm quote right before
signing, retrying once if that quote expires.
"""

from fastapi import APIRouter, Depends

from cypherx.core import WalletCore, get_core
from cypherx.web.contracts.swaps import SwapExecuteResponse, SwapQuoteResponse, SwapRequest

router = APIRouter(prefix="/swaps", tags=["swaps"])


@router.post("/price", response_model=SwapQuoteResponse)
async def get_price(
    request: SwapRequest,
    core: WalletCore = Depends(get_core),
) -> SwapQuoteResponse:
    intent = request.to_intent(core.settings.default_slippage_bps)
    taker = core.vault.wallet.address if core.vault.wallet else None
    quote = await core.swaps.get_indicative_price(intent, taker=taker)
    return SwapQuoteResponse.from_quote(quote)


@router.post("/quote", response_model=SwapQuoteResponse)
async def get_quote(
    request: SwapRequest,
    core: WalletCore = Depends(get_core),
) -> SwapQuoteResponse:
    session = core.vault.require_session()
    intent = request.to_intent(core.settings.default_slippage_bps)
    quote = await core.swaps.get_firm_quote(intent, session.address)
    return SwapQuoteResponse.from_quote(quote)


@router.post("/execute", response_model=SwapExecuteResponse)
async def execute_swap(
    request: SwapRequest,
    core: WalletCore = Depends(get_core),
) -> SwapExecuteResponse:
    intent = request.to_intent(core.settings.default_slippage_bps)
    handle = await core.swap(
        intent.sell_token,
        intent.buy_token,
        intent.sell_amount,
        slippage_bps=intent.slippage_bps,
    )
    return SwapExecuteResponse(
        hash=handle.hash,
        status=handle.record.status.value,
        description=handle.tx.description,
    )
