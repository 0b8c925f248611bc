"""Transfer endpoint and local transaction history."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from cypherx.core import WalletCore, get_core
from cypherx.models import TxStatus
from cypherx.web.contracts.transactions import (
    SendRequest,
    TransactionListResponse,
    TransactionRecordResponse,
)

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.post("/send", response_model=TransactionRecordResponse)
async def send(
    request: SendRequest,
    core: WalletCore = Depends(get_core),
) -> TransactionRecordResponse:
    """Sign and broadcast a transfer from the unlocked wallet.

    Returns the pending record unless ``wait`` is set, in which case the
    response carries the confirmed or failed record (or still pending on
    timeout).
    """
    handle = await core.send(
        request.token.to_descriptor(),
        request.amount,
        request.recipient,
        wait=request.wait,
    )
    return TransactionRecordResponse.from_record(handle.record)


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    limit: int = Query(50, ge=1, le=500),
    status: Optional[TxStatus] = None,
    core: WalletCore = Depends(get_core),
) -> TransactionListResponse:
    records = await core.store.list_transactions(limit=limit, status=status)
    return TransactionListResponse(
        transactions=[TransactionRecordResponse.from_record(r) for r in records]
    )


@router.get("/{tx_hash}", response_model=TransactionRecordResponse)
async def get_transaction(
    tx_hash: str,
    core: WalletCore = Depends(get_core),
) -> TransactionRecordResponse:
    record = await core.transactions.get_record(tx_hash)
    if record is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return TransactionRecordResponse.from_record(record)
