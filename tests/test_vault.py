"""Tests for key encryption and the Key Vault state machine."""

import copy
import json
import pickle

import pytest
from eth_account import Account

from cypherx.crypto import EncryptedKey, decrypt_secret, encrypt_secret
from cypherx.errors import (
    InvalidBackupFormat,
    InvalidInput,
    InvalidPassword,
    NoWallet,
    VaultLocked,
    WalletExists,
)
from cypherx.models import UnsignedTx
from cypherx.vault import KeyVault, VaultState

from conftest import RECIPIENT, TEST_ITERATIONS, TEST_PASSWORD

FIXED_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
FIXED_ADDRESS = Account.from_key(FIXED_KEY).address


def sample_tx(nonce: int = 0) -> UnsignedTx:
    return UnsignedTx(
        to=RECIPIENT,
        value=10**15,
        data="0x",
        chain_id=8453,
        gas=21000,
        gas_price=1_000_000_000,
        nonce=nonce,
    )


class TestCrypto:
    def test_encrypt_decrypt_round_trip(self):
        encrypted = encrypt_secret("secret", "password123", iterations=TEST_ITERATIONS)

        assert encrypted.ciphertext != "secret"
        assert decrypt_secret(encrypted, "password123") == "secret"

    def test_fresh_salt_per_encryption(self):
        a = encrypt_secret("secret", "password123", iterations=TEST_ITERATIONS)
        b = encrypt_secret("secret", "password123", iterations=TEST_ITERATIONS)

        assert a.salt != b.salt
        assert a.ciphertext != b.ciphertext

    def test_wrong_password_and_corruption_look_the_same(self):
        encrypted = encrypt_secret("secret", "password123", iterations=TEST_ITERATIONS)
        tampered = EncryptedKey(
            ciphertext=encrypted.ciphertext[:-4] + "AAAA",
            salt=encrypted.salt,
            iterations=encrypted.iterations,
        )
        bad_salt = EncryptedKey(
            ciphertext=encrypted.ciphertext, salt="zz", iterations=encrypted.iterations
        )

        errors = []
        for candidate, password in [
            (encrypted, "wrong-password"),
            (tampered, "password123"),
            (bad_salt, "password123"),
        ]:
            with pytest.raises(InvalidPassword) as exc_info:
                decrypt_secret(candidate, password)
            errors.append((type(exc_info.value), exc_info.value.message))

        assert len(set(errors)) == 1


class TestVaultLifecycle:
    @pytest.mark.asyncio
    async def test_starts_without_wallet(self, vault):
        assert await vault.load() is None
        assert vault.state == VaultState.NO_WALLET
        with pytest.raises(NoWallet):
            vault.require_session()

    @pytest.mark.asyncio
    async def test_create_opens_session(self, vault, store):
        wallet = await vault.create(TEST_PASSWORD)

        assert vault.state == VaultState.UNLOCKED
        assert vault.session.address == wallet.address

        stored = await store.load_wallet()
        assert stored.address == wallet.address
        assert TEST_PASSWORD not in stored.encrypted_key

    @pytest.mark.asyncio
    async def test_plaintext_key_never_persisted(self, vault, store):
        await vault.create(TEST_PASSWORD)
        backup = await vault.export_backup(vault.session)

        stored = await store.load_wallet()
        key_hex = backup["privateKey"][2:]
        assert key_hex not in stored.encrypted_key
        assert key_hex not in stored.salt

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, vault):
        with pytest.raises(InvalidInput):
            await vault.create("short")
        assert vault.state == VaultState.NO_WALLET

    @pytest.mark.asyncio
    async def test_second_wallet_refused(self, unlocked):
        vault, _ = unlocked
        with pytest.raises(WalletExists):
            await vault.create(TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_lock_then_unlock_restores_equivalent_session(self, unlocked):
        vault, session = unlocked
        before = await vault.sign(sample_tx(), session)

        await vault.lock()
        assert vault.state == VaultState.LOCKED
        assert not session.active

        restored = await vault.unlock(TEST_PASSWORD)
        assert restored.address == session.address
        assert await vault.sign(sample_tx(), restored) == before

    @pytest.mark.asyncio
    async def test_unlock_survives_reload(self, store):
        first = KeyVault(store, kdf_iterations=TEST_ITERATIONS)
        wallet = await first.create(TEST_PASSWORD)

        second = KeyVault(store, kdf_iterations=TEST_ITERATIONS)
        await second.load()
        assert second.state == VaultState.LOCKED

        session = await second.unlock(TEST_PASSWORD)
        assert session.address == wallet.address

    @pytest.mark.asyncio
    async def test_wrong_password(self, unlocked):
        vault, _ = unlocked
        await vault.lock()

        with pytest.raises(InvalidPassword):
            await vault.unlock("not the password")
        assert vault.state == VaultState.LOCKED

    @pytest.mark.asyncio
    async def test_unlock_without_wallet(self, vault):
        with pytest.raises(NoWallet):
            await vault.unlock(TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_clear_destroys_ciphertext(self, unlocked, store):
        vault, session = unlocked
        await vault.clear()

        assert vault.state == VaultState.NO_WALLET
        assert not session.active
        assert await store.load_wallet() is None
        with pytest.raises(NoWallet):
            await vault.unlock(TEST_PASSWORD)


class TestSigning:
    @pytest.mark.asyncio
    async def test_sign_requires_unlocked_session(self, unlocked):
        vault, session = unlocked
        await vault.lock()

        with pytest.raises(VaultLocked):
            await vault.sign(sample_tx(), session)

    @pytest.mark.asyncio
    async def test_superseded_session_cannot_sign(self, unlocked):
        vault, old_session = unlocked
        await vault.lock()
        await vault.unlock(TEST_PASSWORD)

        with pytest.raises(VaultLocked):
            await vault.sign(sample_tx(), old_session)

    @pytest.mark.asyncio
    async def test_signed_tx_recovers_to_wallet(self, unlocked):
        vault, session = unlocked
        raw = await vault.sign(sample_tx(), session)

        assert Account.recover_transaction(raw) == session.address

    @pytest.mark.asyncio
    async def test_incomplete_tx_rejected(self, unlocked):
        vault, session = unlocked
        tx = sample_tx()
        tx.nonce = None

        with pytest.raises(InvalidInput):
            await vault.sign(tx, session)

    @pytest.mark.asyncio
    async def test_session_cannot_be_copied(self, unlocked):
        _, session = unlocked
        with pytest.raises(TypeError):
            copy.copy(session)
        with pytest.raises(TypeError):
            copy.deepcopy(session)
        with pytest.raises(TypeError):
            pickle.dumps(session)
        assert "key" not in repr(session).lower()


class TestBackup:
    @pytest.mark.asyncio
    async def test_import_backup(self, vault):
        backup = json.dumps({"address": FIXED_ADDRESS, "privateKey": FIXED_KEY, "createdAt": 1700000000000})

        wallet = await vault.import_from_backup(backup, TEST_PASSWORD)

        assert wallet.address == FIXED_ADDRESS
        assert wallet.created_at.year == 2023
        assert vault.state == VaultState.UNLOCKED

    @pytest.mark.asyncio
    async def test_export_then_import_round_trip(self, unlocked, store):
        vault, session = unlocked
        backup = await vault.export_backup(session)
        await vault.clear()

        other = KeyVault(store, kdf_iterations=TEST_ITERATIONS)
        wallet = await other.import_from_backup(backup, "another password")

        assert wallet.address == backup["address"]

    @pytest.mark.asyncio
    async def test_missing_private_key(self, vault, store):
        with pytest.raises(InvalidBackupFormat):
            await vault.import_from_backup({"address": FIXED_ADDRESS}, TEST_PASSWORD)

        assert vault.state == VaultState.NO_WALLET
        assert await store.load_wallet() is None

    @pytest.mark.asyncio
    async def test_missing_private_key_keeps_existing_wallet(self, unlocked, store):
        vault, session = unlocked
        address = session.address

        with pytest.raises(InvalidBackupFormat):
            await vault.import_from_backup(json.dumps({"address": FIXED_ADDRESS}), TEST_PASSWORD)

        assert vault.state == VaultState.UNLOCKED
        assert (await store.load_wallet()).address == address

    @pytest.mark.asyncio
    async def test_key_must_match_address(self, vault):
        backup = {"address": RECIPIENT, "privateKey": FIXED_KEY}
        with pytest.raises(InvalidBackupFormat):
            await vault.import_from_backup(backup, TEST_PASSWORD)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", ["not json", "[1, 2]", b"\xff\xfe"])
    async def test_unreadable_backup(self, vault, payload):
        with pytest.raises(InvalidBackupFormat):
            await vault.import_from_backup(payload, TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_export_requires_session(self, unlocked):
        vault, session = unlocked
        await vault.lock()
        with pytest.raises(VaultLocked):
            await vault.export_backup(session)
