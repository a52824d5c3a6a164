"""Top-level authentication facade.

:class:`Auth` resolves per-call options against its configuration,
selects the grant strategy and exposes login, account lookup, listing,
revocation and server discovery.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

import httpx
from pydantic import ValidationError

from authgrant.authenticators import (
    PKCE,
    Authenticator,
    ClientSecret,
    OwnerPassword,
    SignedJWT,
)
from authgrant.config import AuthConfig, ResolvedOptions, resolve_options
from authgrant.endpoints import (
    Endpoints,
    discover_endpoints,
    fetch_server_info,
    get_endpoints,
)
from authgrant.exceptions import (
    InvalidArgumentError,
    InvalidParameterError,
    InvalidValueError,
)
from authgrant.logging_config import get_logger
from authgrant.models import CredentialRecord, LoginResult
from authgrant.oauth.flows import TokenSet
from authgrant.oauth.interactive import ManualLogin
from authgrant.oauth.token_store import BaseTokenStore, TokenStore, create_token_store


class Auth:
    """Authentication client.

    Args:
        config: Instance configuration (an AuthConfig or a mapping of its fields)
        token_store: Store to use instead of the one selected by
            ``config.token_store_type``; a store built on BaseTokenStore
            also supplies the refresh threshold
        logger: Logger to use instead of the package logger
        http_client: Shared HTTP client; one is created lazily when omitted

    Raises:
        InvalidArgumentError: If config is not an object
        InvalidParameterError: If token_store is not a TokenStore
    """

    def __init__(
        self,
        config: AuthConfig | Mapping[str, Any] | None = None,
        *,
        token_store: TokenStore | None = None,
        logger: logging.Logger | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if config is None:
            config = AuthConfig()
        elif isinstance(config, Mapping):
            try:
                config = AuthConfig.model_validate(dict(config))
            except ValidationError as e:
                raise InvalidValueError(f"Invalid configuration: {e}") from e
        elif not isinstance(config, AuthConfig):
            msg = "Expected options to be an object"
            raise InvalidArgumentError(msg)

        self.config = config
        self.logger = logger or get_logger(__name__)

        if token_store is not None:
            if not isinstance(token_store, TokenStore):
                msg = 'Expected the token store to be a "TokenStore" instance'
                raise InvalidParameterError(msg)
            self.token_store: TokenStore | None = token_store
        else:
            self.token_store = create_token_store(config)

        if isinstance(self.token_store, BaseTokenStore):
            self.token_refresh_threshold = self.token_store.token_refresh_threshold
        else:
            self.token_refresh_threshold = config.token_refresh_threshold

        self._client = http_client
        self._owns_client = http_client is None
        self._authenticators: dict[str, Authenticator] = {}
        self._discovered: dict[tuple[str, str], Endpoints] = {}

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> Auth:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def create_authenticator(
        self,
        options: ResolvedOptions | None = None,
        endpoints: Endpoints | None = None,
        **overrides: Any,
    ) -> Authenticator:
        """Select and construct the grant strategy for a set of options.

        The first matching rule wins: username and password select
        OwnerPassword, a client secret selects ClientSecret, a secret
        file selects SignedJWT, and anything else falls back to PKCE.

        Args:
            options: Resolved options; resolved from ``overrides`` when omitted
            endpoints: Endpoints to use instead of the computed defaults
            **overrides: Call-time option overrides

        Returns:
            Authenticator
        """
        if options is None:
            options = resolve_options(self.config, **overrides)

        common: dict[str, Any] = {
            "base_url": options.base_url,
            "realm": options.realm,
            "client_id": options.client_id,
            "env": options.env,
            "service_account": options.service_account,
            "client": self._get_client(),
            "token_store": self.token_store,
            "token_refresh_threshold": self.token_refresh_threshold,
            "endpoints": endpoints,
            "http_timeout": self.config.http_timeout,
            "logger": self.logger,
        }

        if options.username and options.password:
            return OwnerPassword(username=options.username, password=options.password, **common)
        if options.client_secret:
            return ClientSecret(client_secret=options.client_secret, **common)
        if options.secret_file:
            return SignedJWT(secret_file=options.secret_file, **common)
        return PKCE(interactive_login_timeout=self.config.interactive_login_timeout, **common)

    async def _endpoints(self, options: ResolvedOptions) -> Endpoints | None:
        if not self.config.discover:
            return None
        key = (options.base_url, options.realm)
        if key not in self._discovered:
            defaults = get_endpoints(options.base_url, options.realm)
            self._discovered[key] = await discover_endpoints(self._get_client(), defaults)
        return self._discovered[key]

    async def authenticator(self, **opts: Any) -> Authenticator:
        """Return the authenticator for the given options.

        Authenticators are cached by hash so their in-memory credential and
        refresh lock are shared between calls.
        """
        options = resolve_options(self.config, **opts)
        created = self.create_authenticator(options, endpoints=await self._endpoints(options))
        return self._authenticators.setdefault(created.hash, created)

    async def login(
        self,
        *,
        force: bool = False,
        code: str | None = None,
        code_verifier: str | None = None,
        redirect_uri: str | None = None,
        manual: bool = False,
        app: str | Sequence[str] | None = None,
        wait: bool = False,
        timeout: float | None = None,
        **opts: Any,
    ) -> LoginResult | ManualLogin:
        """Authenticate with the strategy selected by the options.

        Args:
            force: Ignore a stored credential and always log in
            code: Authorization code from an out-of-band interactive login
            code_verifier: PKCE verifier matching ``code``
            redirect_uri: Redirect URI ``code`` was issued for
            manual: Return a ManualLogin handle instead of opening a browser
            app: Program (and arguments) to open the login URL with
            wait: Wait for ``app`` to exit
            timeout: Milliseconds to wait for the interactive redirect
            **opts: Option overrides (base_url, client_id, username, ...)

        Returns:
            LoginResult, or ManualLogin for a manual interactive login
        """
        authenticator = await self.authenticator(**opts)
        if isinstance(authenticator, PKCE):
            return await authenticator.login(
                force=force,
                code=code,
                code_verifier=code_verifier,
                redirect_uri=redirect_uri,
                manual=manual,
                app=app,
                wait=wait,
                timeout=timeout,
            )
        return await authenticator.login(force=force)

    async def get_token(self, refresh: bool = False, **opts: Any) -> TokenSet:
        """Return a valid token set for the selected strategy."""
        authenticator = await self.authenticator(**opts)
        return await authenticator.get_token(refresh=refresh)

    async def get_account(
        self,
        account_name: str | None = None,
        base_url: str | None = None,
        hash: str | None = None,
        **opts: Any,
    ) -> CredentialRecord | None:
        """Look up a stored credential.

        Args:
            account_name: Account name to find
            base_url: Base URL to filter by (defaults to the resolved base URL)
            hash: Authenticator hash; computed from the options when omitted
            **opts: Option overrides used to compute the hash

        Returns:
            The credential record, or None
        """
        if self.token_store is None:
            self.logger.debug("Cannot get account, no token store")
            return None

        options = resolve_options(self.config, base_url=base_url, **opts)
        if hash is None and options.client_id:
            hash = self.create_authenticator(options).hash

        return await self.token_store.get(
            hash=hash,
            account_name=account_name,
            base_url=options.base_url,
        )

    async def list(self) -> list[CredentialRecord]:
        """Return all valid stored credentials."""
        if self.token_store is None:
            return []
        return await self.token_store.list()

    async def revoke(
        self,
        accounts: str | Sequence[str] | None = None,
        all_accounts: bool = False,
        base_url: str | None = None,
    ) -> list[CredentialRecord]:
        """Remove stored credentials and log them out at the provider.

        Args:
            accounts: Account name(s) or hash(es) to revoke
            all_accounts: Revoke every stored credential
            base_url: Only revoke credentials for this base URL

        Returns:
            The removed credential records

        Raises:
            InvalidArgumentError: If neither accounts nor all_accounts is given
        """
        if not all_accounts:
            if isinstance(accounts, str):
                accounts = [accounts]
            if not isinstance(accounts, Sequence) or not accounts:
                msg = 'Expected accounts to be "all" or a list of accounts'
                raise InvalidArgumentError(msg)

        if self.token_store is None:
            self.logger.debug("No token store, nothing to revoke")
            return []

        if all_accounts:
            revoked = await self.token_store.clear(base_url)
        else:
            revoked = await self.token_store.delete(list(accounts or []), base_url)

        for record in revoked:
            authenticator = self._authenticators.pop(record.hash, None)
            if record.refresh_token:
                await self._logout(record, authenticator)

        return revoked

    async def _logout(self, record: CredentialRecord, authenticator: Authenticator | None = None) -> None:
        endpoints = self._discovered.get((record.base_url, record.realm))
        url = (endpoints or get_endpoints(record.base_url, record.realm)).logout_url
        data = {"client_id": record.client_id, "refresh_token": record.refresh_token or ""}
        if authenticator is not None:
            data.update(authenticator.client_auth_params())
        if record.tokens.get("id_token"):
            data["id_token_hint"] = record.tokens["id_token"]

        try:
            response = await self._get_client().post(url, data=data)
        except httpx.HTTPError as e:
            self.logger.warning(
                "Failed to log out %s (%s, %s): %s",
                record.name,
                record.base_url,
                record.realm,
                e,
            )
            return

        if response.is_success:
            self.logger.info("Logged out %s (%s, %s)", record.name, record.base_url, record.realm)
        else:
            self.logger.warning(
                "Failed to log out %s: %s (%s, %s)",
                record.name,
                response.status_code,
                record.base_url,
                record.realm,
            )

    async def server_info(self, url: str | None = None, **opts: Any) -> dict[str, Any]:
        """Fetch the provider's OpenID configuration.

        Args:
            url: Configuration URL; derived from base_url/realm/env when omitted
            **opts: Option overrides

        Returns:
            Provider metadata
        """
        if not url:
            options = resolve_options(self.config, **opts)
            url = get_endpoints(options.base_url, options.realm).well_known_url
        return await fetch_server_info(self._get_client(), url)
