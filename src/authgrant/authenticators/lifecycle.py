"""Token lifecycle shared by all grant strategies.

Handles the token endpoint exchange, identity resolution, persistence
and refresh of the credential produced by an authenticator.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import jwt

from authgrant.exceptions import AuthError, AuthInvalidTokenError
from authgrant.models import CredentialRecord, Expiry, LoginResult
from authgrant.oauth.flows import GrantTypes, TokenSet, fetch_json, request_token

if TYPE_CHECKING:
    from authgrant.authenticators.base import Authenticator
    from authgrant.oauth.token_store import TokenStore


def decode_claims(token: str | None) -> dict[str, Any]:
    """Decode JWT claims without verifying the signature.

    Returns:
        The claims, or an empty dict for opaque or malformed tokens
    """
    if not token:
        return {}
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return {}
    return claims if isinstance(claims, dict) else {}


class TokenLifecycle:
    """Exchange, refresh and persistence for one authenticator.

    Args:
        authenticator: Owning authenticator
        token_store: Optional store for persisting credentials
        token_refresh_threshold: Seconds before expiry to refresh
        logger: Logger for lifecycle events
    """

    def __init__(
        self,
        authenticator: Authenticator,
        *,
        token_store: TokenStore | None,
        token_refresh_threshold: float,
        logger: logging.Logger,
    ) -> None:
        self.authenticator = authenticator
        self.token_store = token_store
        self.token_refresh_threshold = token_refresh_threshold
        self.logger = logger
        self.record: CredentialRecord | None = None
        self._lock = asyncio.Lock()

    async def exchange(self, params: dict[str, str]) -> dict[str, Any]:
        """POST a grant request to the token endpoint.

        ``client_id`` and the client authentication fields are added to
        ``params``.

        Returns:
            Decoded token response
        """
        auth = self.authenticator
        data = {"client_id": auth.client_id, **auth.client_auth_params(), **params}
        return await request_token(auth.get_client(), auth.endpoints.token_url, data)

    async def resolve_identity(self, token_set: TokenSet) -> tuple[str, str | None]:
        """Work out the account name and email of the principal.

        Returns:
            ``(name, email)``; name falls back to the client ID
        """
        auth = self.authenticator
        claims = {
            **decode_claims(token_set.access_token),
            **decode_claims(token_set.id_token),
        }

        if not claims.get("email") and not auth.service_account:
            try:
                userinfo = await fetch_json(
                    auth.get_client(),
                    auth.endpoints.user_info_url,
                    access_token=token_set.access_token,
                )
                claims = {**claims, **userinfo}
            except AuthError as e:
                self.logger.warning("Unable to fetch user info: %s", e)

        email = claims.get("email") or None
        name = email or claims.get("preferred_username") or auth.client_id
        return str(name), email

    async def complete(
        self,
        response: dict[str, Any],
        previous: CredentialRecord | None = None,
    ) -> CredentialRecord:
        """Turn a token response into a persisted credential record.

        Args:
            response: Token endpoint response
            previous: Record being refreshed; its identity and refresh
                token are kept when the response omits them

        Returns:
            The new record
        """
        auth = self.authenticator
        token_set = TokenSet.from_token_response(response)

        tokens = dict(response)
        refresh_expires = token_set.refresh_expires_at
        if previous is not None:
            tokens = {**previous.tokens, **tokens}
            if not response.get("refresh_token"):
                refresh_expires = previous.expires.refresh
            name, email = previous.name, previous.email
        else:
            name, email = await self.resolve_identity(token_set)

        record = CredentialRecord(
            hash=auth.hash,
            authenticator=auth.name,
            base_url=auth.base_url,
            realm=auth.realm,
            client_id=auth.client_id,
            env=auth.env,
            name=name,
            email=email,
            tokens=tokens,
            expires=Expiry(access=token_set.expires_at, refresh=refresh_expires),
        )

        if self.token_store is not None:
            await self.token_store.set(record)
        self.record = record
        self.logger.debug("Credential for %s valid until %s", name, record.expires.access)
        return record

    def result(self, record: CredentialRecord) -> LoginResult:
        return LoginResult(
            access_token=record.access_token,
            account=record.name,
            email=record.email,
            authenticator=record.authenticator,
            record=record,
        )

    async def load(self) -> CredentialRecord | None:
        """Return the current record from memory or the token store."""
        if self.record is None and self.token_store is not None:
            self.record = await self.token_store.get(hash=self.authenticator.hash)
        return self.record

    async def reuse(self) -> LoginResult | None:
        """Return a login result for an existing usable credential, if any."""
        record = await self.load()
        if record is None or record.is_expired():
            return None
        try:
            await self.get_token()
        except AuthError as e:
            self.logger.info("Stored credential for %s is not usable: %s", record.name, e)
            self.record = None
            return None
        self.logger.info("Using stored credential for %s", self.record.name)
        return self.result(self.record)

    async def refresh(self, record: CredentialRecord) -> CredentialRecord:
        """Exchange the record's refresh token for a new token set."""
        self.logger.debug("Refreshing access token for %s", record.name)
        response = await self.exchange(
            {
                "grant_type": GrantTypes.REFRESH_TOKEN,
                "refresh_token": record.refresh_token or "",
            }
        )
        return await self.complete(response, previous=record)

    async def regrant(self) -> CredentialRecord:
        """Obtain a fresh credential without user interaction."""
        auth = self.authenticator
        self.logger.debug("Re-authenticating %s with %s grant", auth.client_id, auth.name)
        response = await auth.grant()
        return await self.complete(response)

    async def get_token(self, refresh: bool = False) -> TokenSet:
        """Return a valid token set, refreshing or re-authenticating as needed.

        Raises:
            AuthInvalidTokenError: If there is no usable token and the
                authenticator cannot re-authenticate silently
        """
        reauthenticates = self.authenticator.reauthenticates

        async with self._lock:
            record = await self.load()
            if record is None:
                if not reauthenticates:
                    msg = "No credential available, login required"
                    raise AuthInvalidTokenError(msg)
                record = await self.regrant()
                return record.to_token_set()

            now = datetime.now(UTC)
            threshold = timedelta(seconds=self.token_refresh_threshold)
            if not refresh and now < record.expires.access - threshold:
                return record.to_token_set()

            if record.refresh_token_valid(now):
                record = await self.refresh(record)
            elif reauthenticates:
                record = await self.regrant()
            elif record.access_expired(now):
                msg = "Access token expired and no valid refresh token is available"
                raise AuthInvalidTokenError(msg)

            return record.to_token_set()
