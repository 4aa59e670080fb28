"""Credential persistence for vendor OAuth tokens.

Tokens are keyed by vendor and optional tenancy scope. The gateway only
depends on the CredentialStore protocol; the in-memory backend serves
tests and single-process use, the encrypted file backend keeps tokens
across restarts with Fernet encryption at rest.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken

from device_gateway.core.models.access import TenancyScope, utcnow
from device_gateway.core.models.token import TokenRecord
from device_gateway.security.secrets_manager import SecretsManager

logger = logging.getLogger(__name__)


def credential_key(vendor: str, scope: TenancyScope | None = None) -> str:
    """Build the storage key for a vendor and optional scope.

    Examples:
        >>> credential_key("yale")
        'yale:*/*'
        >>> credential_key("yale", TenancyScope(property_id="p1", unit_id="u2"))
        'yale:p1/u2'
    """
    return f"{vendor}:{(scope or TenancyScope()).key}"


@runtime_checkable
class CredentialStore(Protocol):
    """Key-value persistence for TokenRecords."""

    async def get(self, key: str) -> TokenRecord | None: ...

    async def set(self, key: str, record: TokenRecord) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def items(self) -> dict[str, TokenRecord]: ...


async def sweep_expired(store: CredentialStore, now: datetime | None = None) -> int:
    """Mark expired active records inactive without deleting them.

    Args:
        store: Credential store to sweep
        now: Reference time (default: current UTC time)

    Returns:
        Number of records marked inactive
    """
    now = now or utcnow()
    swept = 0
    for key, record in (await store.items()).items():
        if record.is_active and record.is_expired(now):
            record.invalidate()
            await store.set(key, record)
            swept += 1
    if swept:
        logger.info(f"Marked {swept} expired token(s) inactive")
    return swept


class InMemoryCredentialStore:
    """Process-local credential store."""

    def __init__(self) -> None:
        self._records: dict[str, TokenRecord] = {}

    async def get(self, key: str) -> TokenRecord | None:
        record = self._records.get(key)
        return record.model_copy() if record else None

    async def set(self, key: str, record: TokenRecord) -> None:
        self._records[key] = record.model_copy()

    async def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    async def items(self) -> dict[str, TokenRecord]:
        return {k: v.model_copy() for k, v in self._records.items()}


class EncryptedFileCredentialStore:
    """Credential store backed by a Fernet-encrypted JSON file.

    The whole file is decrypted, updated and re-encrypted on each write.
    An asyncio lock serializes access within the process.

    Attributes:
        path: Location of the encrypted file
    """

    def __init__(self, path: Path, key: bytes | str) -> None:
        self.path = path
        self._fernet = Fernet(key)
        self._lock = asyncio.Lock()

    @classmethod
    def from_secrets(
        cls, path: Path, secrets: SecretsManager
    ) -> EncryptedFileCredentialStore:
        """Create a store using the `credential_store_key` secret.

        Raises:
            ValueError: If the key secret is missing
        """
        key = secrets.credential_store_key()
        return cls(path, key)

    @staticmethod
    def generate_key() -> bytes:
        return Fernet.generate_key()

    def _read(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            plaintext = self._fernet.decrypt(self.path.read_bytes())
        except InvalidToken as e:
            raise ValueError(f"Cannot decrypt credential file {self.path}") from e
        return json.loads(plaintext)

    def _write(self, data: dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_bytes(self._fernet.encrypt(json.dumps(data).encode()))
        tmp.replace(self.path)

    async def get(self, key: str) -> TokenRecord | None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
        raw = data.get(key)
        return TokenRecord.model_validate(raw) if raw else None

    async def set(self, key: str, record: TokenRecord) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data[key] = record.model_dump(mode="json")
            await asyncio.to_thread(self._write, data)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if key not in data:
                return False
            del data[key]
            await asyncio.to_thread(self._write, data)
            return True

    async def items(self) -> dict[str, TokenRecord]:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
        return {k: TokenRecord.model_validate(v) for k, v in data.items()}
