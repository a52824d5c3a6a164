"""Token storage implementations.

Defines the :class:`TokenStore` contract consumed by the authenticators
and provides in-memory, file-based (optionally Fernet-encrypted) and OS
keyring backends. All backends share the record matching and expiry
pruning logic of :class:`BaseTokenStore`.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from authgrant.config import AuthConfig, TokenStoreType, default_token_store_file
from authgrant.exceptions import (
    InvalidArgumentError,
    InvalidValueError,
    TokenStoreError,
)
from authgrant.logging_config import get_logger
from authgrant.models import CredentialRecord

logger = get_logger(__name__)

# Keyring "username" under which the serialized records are kept
KEYRING_ACCOUNT = "tokens"


@runtime_checkable
class TokenStore(Protocol):
    """Persistence contract for credential records.

    Records are keyed by the authenticator fingerprint (``hash``). Custom
    stores only need to provide these five coroutines.
    """

    async def get(
        self,
        *,
        hash: str | None = None,
        account_name: str | None = None,
        base_url: str | None = None,
    ) -> CredentialRecord | None: ...

    async def list(self) -> list[CredentialRecord]: ...

    async def set(self, record: CredentialRecord) -> None: ...

    async def delete(
        self, accounts: str | list[str], base_url: str | None = None
    ) -> list[CredentialRecord]: ...

    async def clear(self, base_url: str | None = None) -> list[CredentialRecord]: ...


def validate_refresh_threshold(value: Any) -> float:
    """Validate a token refresh threshold in seconds.

    Raises:
        InvalidArgumentError: If the value is not a number
        InvalidValueError: If the value is negative
    """
    if isinstance(value, bool) or not isinstance(value, int | float):
        msg = "Expected token refresh threshold to be a number of seconds"
        raise InvalidArgumentError(msg)
    if value < 0:
        msg = "Token refresh threshold must be greater than or equal to zero"
        raise InvalidValueError(msg)
    return float(value)


class BaseTokenStore(ABC):
    """Shared implementation of the TokenStore contract.

    Subclasses provide raw persistence of the full record list through
    :meth:`_read_records` and :meth:`_write_records`.
    """

    def __init__(self, token_refresh_threshold: float = 0) -> None:
        """Initialize the store.

        Args:
            token_refresh_threshold: Seconds before expiry to refresh access tokens
        """
        self.token_refresh_threshold = validate_refresh_threshold(token_refresh_threshold)
        self._lock = asyncio.Lock()

    @abstractmethod
    async def _read_records(self) -> list[CredentialRecord]:
        """Load every persisted record."""

    @abstractmethod
    async def _write_records(self, records: list[CredentialRecord]) -> None:
        """Replace every persisted record."""

    async def get(
        self,
        *,
        hash: str | None = None,
        account_name: str | None = None,
        base_url: str | None = None,
    ) -> CredentialRecord | None:
        """Find a non-expired record by account name or fingerprint.

        Args:
            hash: Authenticator fingerprint
            account_name: Account name; takes precedence over hash
            base_url: Only consider records for this base URL

        Returns:
            Matching record, or None
        """
        async with self._lock:
            records = [
                r for r in await self._read_records()
                if not r.is_expired() and r.matches_base_url(base_url)
            ]

        if account_name:
            for record in records:
                if record.name == account_name:
                    return record
        if hash:
            for record in records:
                if record.hash == hash:
                    return record
        return None

    async def list(self) -> list[CredentialRecord]:
        """Return all non-expired records, pruning expired ones."""
        async with self._lock:
            records = await self._read_records()
            valid = [r for r in records if not r.is_expired()]
            if len(valid) != len(records):
                logger.debug("Pruning %d expired credential(s)", len(records) - len(valid))
                await self._write_records(valid)
            return valid

    async def set(self, record: CredentialRecord) -> None:
        """Insert or replace the record with the same hash."""
        async with self._lock:
            records = [r for r in await self._read_records() if r.hash != record.hash]
            records.append(record)
            await self._write_records(records)
            logger.debug("Stored credential for %s (%s)", record.name, record.authenticator)

    async def delete(
        self, accounts: str | list[str], base_url: str | None = None
    ) -> list[CredentialRecord]:
        """Remove records by account name or hash.

        Args:
            accounts: One or more account names or hashes
            base_url: Only remove records for this base URL

        Returns:
            Removed records
        """
        targets = {accounts} if isinstance(accounts, str) else set(accounts)

        async with self._lock:
            removed: list[CredentialRecord] = []
            remaining: list[CredentialRecord] = []
            for record in await self._read_records():
                if record.matches_base_url(base_url) and (
                    record.name in targets or record.hash in targets
                ):
                    removed.append(record)
                else:
                    remaining.append(record)

            if removed:
                await self._write_records(remaining)
                logger.debug("Deleted %d credential(s)", len(removed))
            return removed

    async def clear(self, base_url: str | None = None) -> list[CredentialRecord]:
        """Remove all records, optionally scoped to a base URL.

        Returns:
            Removed records that had not yet expired
        """
        async with self._lock:
            records = await self._read_records()
            removed = [r for r in records if r.matches_base_url(base_url)]
            remaining = [r for r in records if not r.matches_base_url(base_url)]
            if removed:
                await self._write_records(remaining)
                logger.debug("Cleared %d credential(s)", len(removed))
            return [r for r in removed if not r.is_expired()]


def _serialize_records(records: list[CredentialRecord]) -> str:
    return json.dumps([r.model_dump(mode="json") for r in records])


def _deserialize_records(data: str | bytes) -> list[CredentialRecord]:
    try:
        raw = json.loads(data)
        if not isinstance(raw, list):
            msg = "expected a list of records"
            raise TypeError(msg)
        return [CredentialRecord.model_validate(item) for item in raw]
    except (ValueError, TypeError, ValidationError) as e:
        logger.error("Failed to parse stored credentials: %s", e)
        msg = f"Failed to parse stored credentials: {e}"
        raise TokenStoreError(msg) from e


class MemoryTokenStore(BaseTokenStore):
    """In-memory token storage.

    Tokens are lost when the process exits.
    """

    def __init__(self, token_refresh_threshold: float = 0) -> None:
        super().__init__(token_refresh_threshold)
        self._records: list[CredentialRecord] = []

    async def _read_records(self) -> list[CredentialRecord]:
        return [r.model_copy(deep=True) for r in self._records]

    async def _write_records(self, records: list[CredentialRecord]) -> None:
        self._records = [r.model_copy(deep=True) for r in records]


class FileTokenStore(BaseTokenStore):
    """File-based token storage.

    Records are stored as a JSON list, encrypted with Fernet when an
    encryption key is configured. Writes are atomic and the file is
    created with ``0o600`` permissions.
    """

    def __init__(
        self,
        token_store_file: str | Path | None,
        encryption_key: str | None = None,
        token_refresh_threshold: float = 0,
    ) -> None:
        """Initialize file store.

        Args:
            token_store_file: Path to the token storage file
            encryption_key: Optional Fernet-compatible encryption key
            token_refresh_threshold: Seconds before expiry to refresh access tokens

        Raises:
            InvalidArgumentError: If no file path is given
            TokenStoreError: If the encryption key is invalid
        """
        super().__init__(token_refresh_threshold)

        if not token_store_file:
            msg = "File token store requires a token store file path"
            raise InvalidArgumentError(msg)

        self._fernet: Fernet | None = None
        if encryption_key:
            try:
                self._fernet = Fernet(encryption_key.encode())
            except (ValueError, TypeError) as e:
                raise TokenStoreError(f"Invalid encryption key: {e}") from e

        self.file_path = Path(token_store_file).expanduser()

    async def _read_records(self) -> list[CredentialRecord]:
        if not self.file_path.exists():
            return []

        data = self.file_path.read_bytes()
        if self._fernet is not None:
            try:
                data = self._fernet.decrypt(data)
            except InvalidToken:
                logger.error("Failed to decrypt token file - wrong key?")
                raise TokenStoreError("Failed to decrypt token file") from None

        return _deserialize_records(data)

    async def _write_records(self, records: list[CredentialRecord]) -> None:
        data = _serialize_records(records).encode()
        if self._fernet is not None:
            data = self._fernet.encrypt(data)

        dir_path = self.file_path.parent
        dir_path.mkdir(parents=True, exist_ok=True)

        fd, temp_path_str = tempfile.mkstemp(dir=dir_path, prefix=".tokens-")
        temp_path = Path(temp_path_str)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.chmod(temp_path, 0o600)
            temp_path.replace(self.file_path)
            logger.debug("Saved %d credential(s) to %s", len(records), self.file_path)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_path.unlink()
            raise TokenStoreError(f"Failed to write token file: {e}") from e


class KeyringTokenStore(BaseTokenStore):
    """OS keyring-backed token storage.

    The keyring API cannot enumerate entries, so all records are kept
    as a single JSON document under one keyring entry.
    """

    def __init__(self, service_name: str = "authgrant", token_refresh_threshold: float = 0) -> None:
        """Initialize the keyring store.

        Args:
            service_name: Service name for keyring storage
            token_refresh_threshold: Seconds before expiry to refresh access tokens

        Raises:
            TokenStoreError: If keyring is not installed or has no usable backend
        """
        super().__init__(token_refresh_threshold)

        try:
            import keyring as _keyring
            from keyring.backends import fail, null
        except ImportError:
            msg = "Install keyring for secure token storage: pip install keyring"
            raise TokenStoreError(msg) from None

        backend = _keyring.get_keyring()
        if isinstance(backend, fail.Keyring | null.Keyring):
            msg = "No usable keyring backend is available"
            raise TokenStoreError(msg)

        self._keyring = _keyring
        self.service_name = service_name

    async def _call(self, func: Any, *args: str) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func, self.service_name, *args)
        except self._keyring.errors.KeyringError as e:
            raise TokenStoreError(f"Keyring operation failed: {e}") from e

    async def _read_records(self) -> list[CredentialRecord]:
        data = await self._call(self._keyring.get_password, KEYRING_ACCOUNT)
        if not data:
            return []
        return _deserialize_records(data)

    async def _write_records(self, records: list[CredentialRecord]) -> None:
        if records:
            await self._call(self._keyring.set_password, KEYRING_ACCOUNT, _serialize_records(records))
            return
        with contextlib.suppress(TokenStoreError):
            await self._call(self._keyring.delete_password, KEYRING_ACCOUNT)


def create_token_store(config: AuthConfig) -> TokenStore | None:
    """Create the token store selected by the configuration.

    ``auto`` tries the OS keyring and falls back to the file store;
    an explicit ``keyring`` fails hard when the keyring is unavailable.

    Args:
        config: Configuration with token_store_type and related settings

    Returns:
        Configured token store, or None when persistence is disabled
    """
    if not isinstance(config, AuthConfig):
        msg = "Expected config to be an AuthConfig instance"
        raise InvalidArgumentError(msg)

    store_type = config.token_store_type
    threshold = config.token_refresh_threshold
    encryption_key = (
        config.token_encryption_key.get_secret_value() if config.token_encryption_key else None
    )

    if store_type is None:
        return None

    if store_type == TokenStoreType.MEMORY:
        return MemoryTokenStore(token_refresh_threshold=threshold)

    if store_type == TokenStoreType.FILE:
        return FileTokenStore(
            config.token_store_file, encryption_key, token_refresh_threshold=threshold
        )

    try:
        return KeyringTokenStore(config.keyring_service_name, token_refresh_threshold=threshold)
    except TokenStoreError as e:
        if store_type == TokenStoreType.KEYRING:
            raise
        logger.debug("Keyring unavailable, falling back to file store: %s", e)

    return FileTokenStore(
        config.token_store_file or default_token_store_file(),
        encryption_key,
        token_refresh_threshold=threshold,
    )
