"""Wallet lifecycle endpoints: create, import, unlock, lock, backup, clear.

Key material never leaves the vault except through the explicit backup
export, which requires an unlocked session.
"""

import logging

from fastapi import APIRouter, Depends

from cypherx.core import WalletCore, get_core
from cypherx.web.contracts.wallet import (
    ImportWalletRequest,
    PasswordRequest,
    WalletBackupResponse,
    WalletStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wallet", tags=["wallet"])


def _status(core: WalletCore) -> WalletStatusResponse:
    wallet = core.vault.wallet
    return WalletStatusResponse(
        state=core.vault.state,
        address=wallet.address if wallet else None,
        created_at=wallet.created_at if wallet else None,
    )


@router.get("/status", response_model=WalletStatusResponse)
async def wallet_status(core: WalletCore = Depends(get_core)) -> WalletStatusResponse:
    return _status(core)


@router.post("/create", response_model=WalletStatusResponse)
async def create_wallet(
    request: PasswordRequest,
    core: WalletCore = Depends(get_core),
) -> WalletStatusResponse:
    """Generate a new wallet. The vault is unlocked afterwards."""
    await core.vault.create(request.password)
    return _status(core)


@router.post("/import", response_model=WalletStatusResponse)
async def import_wallet(
    request: ImportWalletRequest,
    core: WalletCore = Depends(get_core),
) -> WalletStatusResponse:
    """Import a backup document and encrypt it under the given password."""
    await core.vault.import_from_backup(request.backup, request.password)
    return _status(core)


@router.post("/unlock", response_model=WalletStatusResponse)
async def unlock_wallet(
    request: PasswordRequest,
    core: WalletCore = Depends(get_core),
) -> WalletStatusResponse:
    await core.vault.unlock(request.password)
    return _status(core)


@router.post("/lock", response_model=WalletStatusResponse)
async def lock_wallet(core: WalletCore = Depends(get_core)) -> WalletStatusResponse:
    await core.vault.lock()
    return _status(core)


@router.get("/backup", response_model=WalletBackupResponse)
async def export_backup(core: WalletCore = Depends(get_core)) -> WalletBackupResponse:
    session = core.vault.require_session()
    backup = await core.vault.export_backup(session)
    logger.warning(f"Backup exported for {backup['address']}")
    return WalletBackupResponse(**backup)


@router.get("/receive")
async def receive(core: WalletCore = Depends(get_core)) -> dict:
    """Address to receive funds at, with the last known native balance."""
    info = await core.receive()
    return {
        "success": True,
        "address": info.address,
        "chain_id": info.chain_id,
        "chain": info.chain_name,
        "native_balance": str(info.snapshot.native_balance) if info.snapshot else None,
    }


@router.delete("", response_model=WalletStatusResponse)
async def clear_wallet(core: WalletCore = Depends(get_core)) -> WalletStatusResponse:
    """Destroy the stored wallet. Irreversible without a backup."""
    address = core.vault.wallet.address if core.vault.wallet else None
    if address:
        await core.balances.stop_polling(address)
    await core.vault.clear()
    return _status(core)
