"""Tests for credential stores."""

from __future__ import annotations

from datetime import timedelta

import pytest

from device_gateway.core.models import TenancyScope, TokenRecord
from device_gateway.security.credential_store import (
    EncryptedFileCredentialStore,
    InMemoryCredentialStore,
    credential_key,
    sweep_expired,
)
from device_gateway.security.secrets_manager import SecretsManager


def make_record(clock, expires_in: float = 3600, vendor: str = "yale") -> TokenRecord:
    return TokenRecord(
        vendor=vendor,
        access_token="access-secret",
        refresh_token="refresh-secret",
        expires_at=clock.utc() + timedelta(seconds=expires_in),
    )


class TestCredentialKey:
    """Test credential key construction."""

    def test_unscoped(self):
        assert credential_key("yale") == "yale:*/*"

    def test_scoped(self):
        scope = TenancyScope(property_id="p1", unit_id="u1")
        assert credential_key("august", scope) == "august:p1/u1"


class TestInMemoryCredentialStore:
    """Test the in-memory store."""

    @pytest.mark.asyncio
    async def test_returns_copies(self, clock):
        """Test mutating a returned record does not change the stored one."""
        store = InMemoryCredentialStore()
        await store.set("yale:*/*", make_record(clock))

        record = await store.get("yale:*/*")
        record.invalidate()

        assert (await store.get("yale:*/*")).is_active is True

    @pytest.mark.asyncio
    async def test_delete(self, clock):
        store = InMemoryCredentialStore()
        await store.set("k", make_record(clock))
        assert await store.delete("k") is True
        assert await store.delete("k") is False
        assert await store.get("k") is None


class TestEncryptedFileCredentialStore:
    """Test the Fernet-encrypted file store."""

    @pytest.mark.asyncio
    async def test_round_trip_encrypted_at_rest(self, tmp_path, clock):
        """Test records survive a new store instance and are not plaintext."""
        key = EncryptedFileCredentialStore.generate_key()
        path = tmp_path / "creds" / "tokens.enc"
        store = EncryptedFileCredentialStore(path, key)
        await store.set("yale:*/*", make_record(clock))

        reopened = EncryptedFileCredentialStore(path, key)
        record = await reopened.get("yale:*/*")

        assert record.access_token == "access-secret"
        assert record.refresh_token == "refresh-secret"
        assert b"access-secret" not in path.read_bytes()

    @pytest.mark.asyncio
    async def test_wrong_key_rejected(self, tmp_path, clock):
        """Test a different key cannot read the file."""
        path = tmp_path / "tokens.enc"
        store = EncryptedFileCredentialStore(path, EncryptedFileCredentialStore.generate_key())
        await store.set("yale:*/*", make_record(clock))

        other = EncryptedFileCredentialStore(path, EncryptedFileCredentialStore.generate_key())
        with pytest.raises(ValueError, match="Cannot decrypt"):
            await other.get("yale:*/*")

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        store = EncryptedFileCredentialStore(
            tmp_path / "none.enc", EncryptedFileCredentialStore.generate_key()
        )
        assert await store.items() == {}
        assert await store.delete("yale:*/*") is False

    def test_from_secrets_requires_key(self, tmp_path):
        """Test the store key must be provided as a secret."""
        secrets = SecretsManager(secrets_path=tmp_path)
        with pytest.raises(ValueError):
            EncryptedFileCredentialStore.from_secrets(tmp_path / "t.enc", secrets)

    def test_from_secrets(self, tmp_path):
        key = EncryptedFileCredentialStore.generate_key()
        (tmp_path / "credential_store_key").write_bytes(key)

        store = EncryptedFileCredentialStore.from_secrets(
            tmp_path / "t.enc", SecretsManager(secrets_path=tmp_path)
        )

        assert store.path == tmp_path / "t.enc"


class TestSweepExpired:
    """Test soft expiry of stored tokens."""

    @pytest.mark.asyncio
    async def test_marks_expired_inactive(self, clock):
        """Test expired records are kept but marked inactive."""
        store = InMemoryCredentialStore()
        await store.set("old", make_record(clock, expires_in=-60))
        await store.set("new", make_record(clock, expires_in=3600))

        swept = await sweep_expired(store, now=clock.utc())

        assert swept == 1
        assert (await store.get("old")).is_active is False
        assert (await store.get("new")).is_active is True
