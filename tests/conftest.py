"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from authgrant.config import ENV_PREFIX, AuthConfig, TokenStoreType
from authgrant.logging_config import reset_logging
from authgrant.models import CredentialRecord, Expiry

BASE_URL = "https://auth.example.com"
REALM = "test"
CLIENT_ID = "test-client"
OIDC_URL = f"{BASE_URL}/auth/realms/{REALM}/protocol/openid-connect"
AUTH_URL = f"{OIDC_URL}/auth"
TOKEN_URL = f"{OIDC_URL}/token"
LOGOUT_URL = f"{OIDC_URL}/logout"
USERINFO_URL = f"{OIDC_URL}/userinfo"
WELL_KNOWN_URL = f"{BASE_URL}/auth/realms/{REALM}/.well-known/openid-configuration"


def make_jwt(claims: dict[str, Any]) -> str:
    """Create a test JWT carrying ``claims``; clients never verify its signature."""
    return jwt.encode(claims, "test-signing-secret-with-enough-length", algorithm="HS256")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Isolate tests from AUTHGRANT_* variables and logging state."""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)
    yield
    reset_logging()


@pytest.fixture
def auth_config() -> AuthConfig:
    """Configuration pointing at the test identity provider with a memory store."""
    return AuthConfig(
        base_url=BASE_URL,
        realm=REALM,
        client_id=CLIENT_ID,
        token_store_type=TokenStoreType.MEMORY,
    )


@pytest.fixture
def authenticator_kwargs() -> dict[str, Any]:
    """Common authenticator constructor arguments."""
    return {"base_url": BASE_URL, "realm": REALM, "client_id": CLIENT_ID}


@pytest.fixture
def token_response() -> Callable[..., dict[str, Any]]:
    """Factory for token endpoint responses."""

    def factory(
        access_token: str = "access-token-1",
        refresh_token: str | None = "refresh-token-1",
        expires_in: int = 300,
        refresh_expires_in: int | None = 1800,
        email: str | None = "jane@example.com",
        **extra: Any,
    ) -> dict[str, Any]:
        response: dict[str, Any] = {
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": expires_in,
        }
        if refresh_token:
            response["refresh_token"] = refresh_token
        if refresh_expires_in is not None:
            response["refresh_expires_in"] = refresh_expires_in
        if email:
            response["id_token"] = make_jwt({"email": email, "preferred_username": "jane"})
        response.update(extra)
        return response

    return factory


@pytest.fixture
def make_record() -> Callable[..., CredentialRecord]:
    """Factory for credential records."""

    def factory(
        name: str = "jane@example.com",
        hash: str = f"{CLIENT_ID}:abc123",
        access_in: float = 300,
        refresh_in: float | None = 1800,
        refresh_token: str | None = "refresh-token-1",
        base_url: str = BASE_URL,
        **tokens: Any,
    ) -> CredentialRecord:
        now = datetime.now(UTC)
        token_data: dict[str, Any] = {"access_token": "access-token-1", **tokens}
        if refresh_token:
            token_data["refresh_token"] = refresh_token
        return CredentialRecord(
            hash=hash,
            authenticator="PKCE",
            base_url=base_url,
            realm=REALM,
            client_id=CLIENT_ID,
            env="prod",
            name=name,
            email=name if "@" in name else None,
            tokens=token_data,
            expires=Expiry(
                access=now + timedelta(seconds=access_in),
                refresh=None if refresh_in is None else now + timedelta(seconds=refresh_in),
            ),
        )

    return factory


@pytest.fixture
def rsa_private_key() -> rsa.RSAPrivateKey:
    """Generate an RSA private key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def secret_file(tmp_path: Path, rsa_private_key: rsa.RSAPrivateKey) -> Path:
    """Write the RSA private key to a PEM file."""
    path = tmp_path / "private_key.pem"
    path.write_bytes(
        rsa_private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return path
