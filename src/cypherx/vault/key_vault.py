"""Key Vault: encrypted key at rest, one in-memory Session while unlocked.

All signing goes through ``KeyVault.sign``. Lock, unlock, sign and clear are
serialized on one asyncio lock, so no signature can straddle a lock.
"""

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional, Union

from eth_account import Account

from cypherx.crypto import DEFAULT_ITERATIONS, EncryptedKey, decrypt_secret, encrypt_secret
from cypherx.errors import (
    InvalidBackupFormat,
    InvalidInput,
    InvalidPassword,
    NoWallet,
    VaultLocked,
    WalletExists,
)
from cypherx.models import UnsignedTx, Wallet, utcnow
from cypherx.storage.store import WalletStore
from cypherx.utils.addresses import is_valid_address, same_address
from cypherx.vault.base import Session, VaultState

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


def _key_hex(account) -> str:
    return "0x" + bytes(account.key).hex()


def _parse_created_at(value: Any) -> datetime:
    """Backups written by the browser store milliseconds since epoch."""
    if isinstance(value, bool) or value is None:
        return utcnow()
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return utcnow()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return utcnow()


class KeyVault:
    """Holds the encrypted wallet and the single unlocked Session."""

    def __init__(self, store: WalletStore, kdf_iterations: int = DEFAULT_ITERATIONS):
        self._store = store
        self._kdf_iterations = kdf_iterations
        self._wallet: Optional[Wallet] = None
        self._session: Optional[Session] = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> VaultState:
        if self._wallet is None:
            return VaultState.NO_WALLET
        if self._session is not None and self._session.active:
            return VaultState.UNLOCKED
        return VaultState.LOCKED

    @property
    def wallet(self) -> Optional[Wallet]:
        return self._wallet

    @property
    def session(self) -> Optional[Session]:
        return self._session if self.state == VaultState.UNLOCKED else None

    def require_session(self) -> Session:
        """Return the open Session or raise VaultLocked / NoWallet."""
        if self._wallet is None:
            raise NoWallet()
        session = self.session
        if session is None:
            raise VaultLocked()
        return session

    async def load(self) -> Optional[Wallet]:
        """Load the stored wallet (if any). The vault starts locked."""
        async with self._lock:
            self._wallet = await self._store.load_wallet()
            self._drop_session()
        if self._wallet:
            logger.info(f"Loaded wallet {self._wallet.address} (locked)")
        return self._wallet

    async def create(self, password: str) -> Wallet:
        """Generate a new key pair, persist its ciphertext and open a Session."""
        self._check_password(password)
        async with self._lock:
            self._ensure_empty()
            account = Account.create()
            wallet = await self._persist(account, password, utcnow())
            logger.info(f"Created wallet {wallet.address}")
            return wallet

    async def import_from_backup(
        self,
        payload: Union[str, bytes, dict],
        password: str,
    ) -> Wallet:
        """Import a ``{address, privateKey, createdAt}`` backup.

        The private key must derive the declared address. On any failure the
        vault state is unchanged.
        """
        self._check_password(password)
        data = self._parse_backup(payload)

        address = data.get("address")
        private_key = data.get("privateKey")
        if not isinstance(address, str) or not address.strip():
            raise InvalidBackupFormat("Invalid wallet file: missing address")
        if not isinstance(private_key, str) or not private_key.strip():
            raise InvalidBackupFormat("Invalid wallet file: missing privateKey")
        if not is_valid_address(address):
            raise InvalidBackupFormat("Invalid wallet file: malformed address")

        private_key = private_key.strip()
        if not _PRIVATE_KEY_RE.match(private_key):
            raise InvalidBackupFormat("Invalid wallet file: malformed privateKey")
        try:
            account = Account.from_key(private_key)
        except ValueError:
            raise InvalidBackupFormat("Invalid wallet file: malformed privateKey")
        if not same_address(account.address, address):
            raise InvalidBackupFormat("Invalid wallet file: privateKey does not match address")

        async with self._lock:
            self._ensure_empty()
            wallet = await self._persist(account, password, _parse_created_at(data.get("createdAt")))
            logger.info(f"Imported wallet {wallet.address}")
            return wallet

    async def export_backup(self, session: Session) -> dict:
        """Produce the backup document. Requires the current Session."""
        async with self._lock:
            self._check_session(session)
            return {
                "address": session.address,
                "privateKey": _key_hex(session._account),
                "createdAt": int(self._wallet.created_at.timestamp() * 1000),
            }

    async def lock(self) -> None:
        async with self._lock:
            if self._session is not None:
                logger.info(f"Locking wallet {self._session.address}")
            self._drop_session()

    async def unlock(self, password: str) -> Session:
        """Decrypt the key and open a fresh Session.

        Raises:
            NoWallet: nothing stored
            InvalidPassword: wrong password or unreadable ciphertext
        """
        async with self._lock:
            if self._wallet is None:
                raise NoWallet()
            encrypted = EncryptedKey(
                ciphertext=self._wallet.encrypted_key,
                salt=self._wallet.salt,
                iterations=self._wallet.kdf_iterations,
            )
            private_key = await asyncio.to_thread(decrypt_secret, encrypted, password)
            try:
                account = Account.from_key(private_key)
            except ValueError:
                raise InvalidPassword()
            if not same_address(account.address, self._wallet.address):
                # Ciphertext decrypts but belongs to another key: treat as corrupt
                raise InvalidPassword()
            self._open_session(account)
            logger.info(f"Unlocked wallet {self._wallet.address}")
            return self._session

    async def sign(self, tx: Union[UnsignedTx, dict], session: Session) -> bytes:
        """Sign a transaction with the Session's key.

        Returns:
            Raw signed transaction bytes

        Raises:
            VaultLocked: session closed, superseded, or vault locked
        """
        tx_dict = tx.to_tx_dict() if isinstance(tx, UnsignedTx) else dict(tx)
        for required in ("nonce", "gas", "gasPrice", "chainId"):
            if tx_dict.get(required) is None:
                raise InvalidInput(f"Transaction is missing {required}")

        async with self._lock:
            self._check_session(session)
            signed = session._account.sign_transaction(tx_dict)
        raw = getattr(signed, "raw_transaction", None) or signed.rawTransaction
        return bytes(raw)

    async def clear(self) -> None:
        """Drop the Session and irrecoverably destroy the stored ciphertext."""
        async with self._lock:
            self._drop_session()
            await self._store.clear_wallet()
            address = self._wallet.address if self._wallet else None
            self._wallet = None
        if address:
            logger.info(f"Cleared wallet {address}")

    # Internal helpers

    def _check_password(self, password: str) -> None:
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    def _ensure_empty(self) -> None:
        if self._wallet is not None:
            raise WalletExists()

    def _check_session(self, session: Optional[Session]) -> None:
        if self._wallet is None:
            raise NoWallet()
        if session is None or session is not self._session or not session.active:
            raise VaultLocked()

    def _open_session(self, account) -> None:
        self._drop_session()
        self._generation += 1
        self._session = Session(account, self._generation)

    def _drop_session(self) -> None:
        if self._session is not None:
            self._session._close()
        self._session = None

    async def _persist(self, account, password: str, created_at: datetime) -> Wallet:
        encrypted = await asyncio.to_thread(
            encrypt_secret, _key_hex(account), password, self._kdf_iterations
        )
        wallet = Wallet(
            address=account.address,
            encrypted_key=encrypted.ciphertext,
            salt=encrypted.salt,
            kdf_iterations=encrypted.iterations,
            created_at=created_at,
        )
        await self._store.save_wallet(wallet)
        self._wallet = wallet
        self._open_session(account)
        return wallet

    @staticmethod
    def _parse_backup(payload: Union[str, bytes, dict]) -> dict:
        if isinstance(payload, dict):
            return payload
        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            data = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError, TypeError):
            raise InvalidBackupFormat("Invalid wallet file format")
        if not isinstance(data, dict):
            raise InvalidBackupFormat("Invalid wallet file format")
        return data
