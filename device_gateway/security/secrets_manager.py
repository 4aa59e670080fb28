"""Vendor secret lookup.

Secrets are read from Docker secret files first and from upper-cased
environment variables second. Resolved values are cached until
`clear_cache()` is called after a rotation.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = ("client_id", "client_secret", "api_key")
CREDENTIAL_STORE_KEY = "credential_store_key"

VENDOR_SECRETS = [
    "smartthings_client_id",
    "smartthings_client_secret",
    "yale_api_key",
    "yale_client_id",
    "yale_client_secret",
    "august_api_key",
    "hue_client_id",
    "hue_client_secret",
    "hue_api_key",
    "nest_client_id",
    "nest_client_secret",
]


class SecretsManager:
    """Resolve vendor client credentials and the credential store key.

    Attributes:
        secrets_path: Directory holding one file per secret
    """

    def __init__(self, secrets_path: Path = Path("/run/secrets")):
        self.secrets_path = secrets_path
        self._cache: dict[str, str] = {}

    def get_secret(self, key: str, required: bool = True) -> str | None:
        """Look up a secret by name.

        Args:
            key: Secret name, e.g. 'yale_api_key'
            required: Raise instead of returning None when absent

        Returns:
            Secret value, or None when optional and absent

        Raises:
            ValueError: If required and found in neither source
        """
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        value = self._read_file(key) or self._read_env(key)
        if value:
            self._cache[key] = value
            return value

        if required:
            raise ValueError(
                f"Secret '{key}' not found in Docker Secrets or environment. "
                f"Create {self.secrets_path / key} or set {key.upper()} environment variable."
            )
        return None

    def vendor_credentials(self, vendor: str) -> dict[str, str]:
        """Credentials available for one vendor, keyed by field name."""
        found = {}
        for field in CREDENTIAL_FIELDS:
            value = self.get_secret(f"{vendor}_{field}", required=False)
            if value:
                found[field] = value
        return found

    def credential_store_key(self) -> str:
        """Fernet key protecting the credential file.

        Raises:
            ValueError: If the key is not configured
        """
        return self.get_secret(CREDENTIAL_STORE_KEY, required=True)  # type: ignore[return-value]

    def vendor_secret_status(self, vendors: list[str]) -> dict[str, bool]:
        """Presence of each known secret belonging to the given vendors."""
        status = {}
        for secret in VENDOR_SECRETS:
            if secret.split("_", 1)[0] in vendors:
                status[secret] = self.get_secret(secret, required=False) is not None
        return status

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Secrets cache cleared")

    def _read_file(self, key: str) -> str | None:
        secret_file = self.secrets_path / key
        if not secret_file.is_file():
            return None
        try:
            value = secret_file.read_text().strip()
        except OSError as e:
            logger.error(f"Failed to read secret file for '{key}': {e}")
            return None
        logger.info(f"Loaded secret '{key}' from {self.secrets_path}")
        return value

    def _read_env(self, key: str) -> str | None:
        value = os.getenv(key.upper())
        if value:
            logger.warning(f"Loaded secret '{key}' from environment (fallback)")
        return value
