"""Authenticator interface and fingerprinting."""

from __future__ import annotations

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from authgrant.authenticators.lifecycle import TokenLifecycle
from authgrant.endpoints import Endpoints, get_endpoints
from authgrant.exceptions import InvalidArgumentError, InvalidParameterError
from authgrant.logging_config import get_logger
from authgrant.oauth.flows import DEFAULT_TIMEOUT
from authgrant.oauth.token_store import TokenStore, validate_refresh_threshold

if TYPE_CHECKING:
    from authgrant.models import LoginResult
    from authgrant.oauth.flows import TokenSet


def require_string(value: Any, description: str) -> str:
    """Validate a non-empty string argument.

    Raises:
        InvalidArgumentError: If the value is not a non-empty string
    """
    if not isinstance(value, str) or not value:
        msg = f"Expected {description} to be a non-empty string"
        raise InvalidArgumentError(msg)
    return value


def fingerprint(client_id: str, params: dict[str, Any]) -> str:
    """Build the store key for an authenticator configuration.

    Returns:
        ``"<client_id>:<sha256 hex of the canonical params>"``
    """
    canonical = json.dumps(params, sort_keys=True, separators=(",", ":"))
    return f"{client_id}:{hashlib.sha256(canonical.encode()).hexdigest()}"


class Authenticator(ABC):
    """Base class for grant strategies.

    Subclasses implement the initial grant; token exchange, identity
    resolution, refresh and persistence are delegated to a
    :class:`TokenLifecycle`.

    Args:
        base_url: Identity provider base URL
        realm: Realm name
        client_id: OAuth client identifier
        env: Environment name the options were resolved from
        service_account: Skip the userinfo lookup for service principals
        client: Shared HTTP client; a private one is created when omitted
        token_store: Optional store for persisting credentials
        token_refresh_threshold: Seconds before expiry to refresh
        endpoints: Precomputed (e.g. discovered) endpoints
        http_timeout: Timeout for a privately created HTTP client
        logger: Logger to use instead of the module logger
    """

    name: ClassVar[str]
    # Whether a fresh grant can be obtained without user interaction
    reauthenticates: ClassVar[bool] = False

    def __init__(
        self,
        *,
        base_url: str,
        realm: str,
        client_id: str,
        env: str | None = None,
        service_account: bool = False,
        client: httpx.AsyncClient | None = None,
        token_store: TokenStore | None = None,
        token_refresh_threshold: float = 0,
        endpoints: Endpoints | None = None,
        http_timeout: float = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client_id = require_string(client_id, "client ID")
        self.base_url = require_string(base_url, "base URL").rstrip("/")
        self.realm = require_string(realm, "realm")
        self.env = env
        self.service_account = service_account

        if token_store is not None and not isinstance(token_store, TokenStore):
            msg = 'Expected the token store to be a "TokenStore" instance'
            raise InvalidParameterError(msg)

        self.endpoints = endpoints or get_endpoints(self.base_url, self.realm)
        self.logger = logger or get_logger(__name__)

        self._client = client
        self._owns_client = client is None
        self._http_timeout = http_timeout

        self.lifecycle = TokenLifecycle(
            self,
            token_store=token_store,
            token_refresh_threshold=validate_refresh_threshold(token_refresh_threshold),
            logger=self.logger,
        )
        self._hash = fingerprint(self.client_id, self.hash_params())

    @property
    def hash(self) -> str:
        """Fingerprint of this configuration, used as the store key."""
        return self._hash

    @property
    def token_store(self) -> TokenStore | None:
        return self.lifecycle.token_store

    def hash_params(self) -> dict[str, Any]:
        """Configuration fields that identify the credential."""
        return {
            "base_url": self.base_url,
            "realm": self.realm,
            "client_id": self.client_id,
        }

    def client_auth_params(self) -> dict[str, str]:
        """Client authentication fields sent with every token request."""
        return {}

    def get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._http_timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this authenticator created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def login(self, *, force: bool = False) -> LoginResult:
        """Perform the initial grant and persist the credential.

        An existing usable credential for this configuration is reused
        unless ``force`` is set.
        """
        if not force:
            existing = await self.lifecycle.reuse()
            if existing is not None:
                return existing

        self.logger.info("Authenticating %s with %s grant", self.client_id, self.name)
        response = await self.grant()
        record = await self.lifecycle.complete(response)
        return self.lifecycle.result(record)

    async def get_token(self, refresh: bool = False) -> TokenSet:
        """Return a valid token set, refreshing it when needed.

        Args:
            refresh: Refresh even if the access token is still fresh

        Raises:
            AuthInvalidTokenError: If no usable token exists and this
                strategy cannot re-authenticate silently
        """
        return await self.lifecycle.get_token(refresh=refresh)

    @abstractmethod
    async def grant(self) -> dict[str, Any]:
        """Obtain a new token response from the provider."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(client_id={self.client_id!r}, base_url={self.base_url!r})"
