"""Token catalog endpoints: search and the recent-token list."""

from fastapi import APIRouter, Depends, Query

from cypherx.core import WalletCore, get_core
from cypherx.web.contracts.tokens import RecordUsageRequest, TokenInfo, TokenListResponse

router = APIRouter(prefix="/tokens", tags=["tokens"])


@router.get("/search", response_model=TokenListResponse)
async def search_tokens(
    q: str = Query(..., description="Symbol, name or contract address"),
    core: WalletCore = Depends(get_core),
) -> TokenListResponse:
    """Address lookup or fuzzy search. No match is an empty list."""
    tokens = await core.catalog.resolve(q)
    return TokenListResponse(tokens=[TokenInfo.from_descriptor(t) for t in tokens])


@router.get("/recent", response_model=TokenListResponse)
async def recent_tokens(core: WalletCore = Depends(get_core)) -> TokenListResponse:
    """Native asset first, then most recently used."""
    return TokenListResponse(tokens=[TokenInfo.from_descriptor(t) for t in core.catalog.recent()])


@router.post("/recent", response_model=TokenListResponse)
async def record_usage(
    request: RecordUsageRequest,
    core: WalletCore = Depends(get_core),
) -> TokenListResponse:
    tokens = await core.catalog.record_usage(request.token.to_descriptor())
    return TokenListResponse(tokens=[TokenInfo.from_descriptor(t) for t in tokens])
