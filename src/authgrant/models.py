"""Credential data model.

A :class:`CredentialRecord` is the unit persisted per authenticated
identity; it is keyed by the fingerprint ("hash") of the authenticator
configuration that produced it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from authgrant.oauth.flows import TokenSet


class Expiry(BaseModel):
    """Absolute expiry instants of a credential's tokens."""

    access: datetime = Field(description="When the access token expires")
    refresh: datetime | None = Field(
        default=None,
        description="When the refresh token expires (None = no expiry or no refresh token)",
    )


class CredentialRecord(BaseModel):
    """A persisted credential for one authenticator configuration.

    Attributes:
        hash: Fingerprint of the authenticator configuration (store key)
        authenticator: Grant strategy that produced the record
        base_url: Identity provider base URL
        realm: Realm name
        client_id: OAuth client identifier
        env: Environment name used to resolve defaults
        name: Account name of the principal
        email: Principal email, when known
        tokens: Raw token response fields
        expires: Absolute token expiries
    """

    hash: str
    authenticator: str
    base_url: str
    realm: str
    client_id: str
    env: str | None = None
    name: str
    email: str | None = None
    tokens: dict[str, Any] = Field(default_factory=dict)
    expires: Expiry

    @property
    def account(self) -> str:
        """Account name of the principal."""
        return self.name

    @property
    def access_token(self) -> str:
        return str(self.tokens.get("access_token", ""))

    @property
    def refresh_token(self) -> str | None:
        return self.tokens.get("refresh_token") or None

    def access_expired(self, now: datetime | None = None) -> bool:
        """Check if the access token is expired."""
        return (now or datetime.now(UTC)) >= self.expires.access

    def refresh_token_valid(self, now: datetime | None = None) -> bool:
        """Check if a refresh token exists and has not expired."""
        if not self.refresh_token:
            return False
        if self.expires.refresh is None:
            return True
        return (now or datetime.now(UTC)) < self.expires.refresh

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the record is unusable: access expired and no valid refresh token."""
        now = now or datetime.now(UTC)
        return self.access_expired(now) and not self.refresh_token_valid(now)

    def matches_base_url(self, base_url: str | None) -> bool:
        """Check if the record belongs to ``base_url`` (None matches everything)."""
        if not base_url:
            return True
        return self.base_url.rstrip("/") == base_url.rstrip("/")

    def to_token_set(self) -> TokenSet:
        """Build a TokenSet view of this record."""
        return TokenSet(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=self.expires.access,
            refresh_expires_at=self.expires.refresh,
            token_type=self.tokens.get("token_type", "Bearer"),
            scope=self.tokens.get("scope"),
            id_token=self.tokens.get("id_token"),
        )


@dataclass
class LoginResult:
    """Normalized result of a successful login."""

    access_token: str
    account: str
    email: str | None
    authenticator: str
    record: CredentialRecord
