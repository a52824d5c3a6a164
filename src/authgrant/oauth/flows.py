"""OAuth 2.0 token endpoint primitives.

Provides the token set model, grant type constants, and the HTTP
helpers shared by every grant strategy: form-encoded grant requests,
JSON fetches, and the mapping of transport/provider failures onto the
authgrant error taxonomy.
"""

from __future__ import annotations

import errno
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from authgrant.exceptions import (
    AuthFailedError,
    AuthInvalidServerResponseError,
    AuthNetworkError,
    AuthServerError,
)
from authgrant.logging_config import get_logger
from authgrant.security import mask_sensitive_data

logger = get_logger(__name__)

# Default HTTP timeout for OAuth requests
DEFAULT_TIMEOUT = 30.0


class GrantTypes:
    """OAuth 2.0 grant type identifiers."""

    AUTHORIZATION_CODE = "authorization_code"
    CLIENT_CREDENTIALS = "client_credentials"
    PASSWORD = "password"
    JWT_BEARER = "urn:ietf:params:oauth:grant-type:jwt-bearer"
    REFRESH_TOKEN = "refresh_token"


@dataclass
class TokenSet:
    """OAuth 2.0 token set.

    Contains access token, optional refresh token, and absolute expiries.
    """

    access_token: str
    refresh_token: str | None
    expires_at: datetime
    refresh_expires_at: datetime | None = None
    token_type: str = "Bearer"
    scope: str | None = None
    id_token: str | None = None

    @classmethod
    def from_token_response(
        cls,
        response: dict[str, Any],
        now: datetime | None = None,
    ) -> TokenSet:
        """Create TokenSet from an OAuth token response.

        Args:
            response: Decoded token endpoint response
            now: Reference time for computing absolute expiries

        Returns:
            TokenSet instance

        Raises:
            AuthInvalidServerResponseError: If access_token is missing
            AuthServerError: If expires_in is missing or malformed
        """
        access_token = response.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise AuthInvalidServerResponseError

        now = now or datetime.now(UTC)
        expires_in = _parse_seconds(response.get("expires_in"))
        if expires_in is None:
            msg = "Authentication failed: Invalid expiry in server response"
            raise AuthServerError(msg)

        refresh_token = response.get("refresh_token") or None
        refresh_expires_at: datetime | None = None
        if refresh_token:
            refresh_expires_in = _parse_seconds(response.get("refresh_expires_in"))
            # 0 or absent means the refresh token does not expire (offline tokens)
            if refresh_expires_in:
                refresh_expires_at = now + timedelta(seconds=refresh_expires_in)

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=now + timedelta(seconds=expires_in),
            refresh_expires_at=refresh_expires_at,
            token_type=response.get("token_type", "Bearer"),
            scope=response.get("scope"),
            id_token=response.get("id_token"),
        )


def _parse_seconds(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds < 0:
        return None
    return seconds


def transport_error_code(exc: BaseException) -> str:
    """Find the transport-level error code behind an httpx error.

    Walks the exception chain (and exception groups) looking for an
    ``OSError`` carrying an errno, e.g. ``ECONNREFUSED``.

    Args:
        exc: The transport exception

    Returns:
        Symbolic errno name, "ETIMEDOUT" for timeouts, or the exception
        class name when no errno is available
    """
    if isinstance(exc, httpx.TimeoutException):
        return "ETIMEDOUT"

    seen: set[int] = set()
    pending: list[BaseException] = [exc]
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, OSError) and current.errno:
            return errno.errorcode.get(current.errno, str(current.errno))
        pending.extend(getattr(current, "exceptions", ()))
        for linked in (current.__cause__, current.__context__):
            if linked is not None:
                pending.append(linked)

    return type(exc).__name__


def _network_error(url: str, exc: httpx.HTTPError) -> AuthNetworkError:
    code = transport_error_code(exc)
    message = f"Request to {url} failed, reason: {str(exc) or type(exc).__name__}"
    return AuthNetworkError(message, transport_code=code)


def _error_message(response: httpx.Response) -> tuple[str, dict | str | None]:
    """Extract the provider supplied message from an error response."""
    body: dict | str | None = None
    try:
        parsed = response.json()
    except ValueError:
        parsed = None

    if isinstance(parsed, dict):
        body = parsed
        message = parsed.get("error_description") or parsed.get("error")
        if message:
            return str(message), body

    text = response.text.strip()
    if text:
        return text, text
    return response.reason_phrase or f"HTTP {response.status_code}", body


async def request_token(
    client: httpx.AsyncClient,
    token_url: str,
    data: dict[str, str],
) -> dict[str, Any]:
    """POST a form-encoded grant request to the token endpoint.

    Args:
        client: HTTP client
        token_url: Token endpoint URL
        data: Grant parameters, including client_id and grant_type

    Returns:
        Decoded JSON token response

    Raises:
        AuthNetworkError: If the provider cannot be reached
        AuthFailedError: If the provider rejects the grant
        AuthServerError: If the response body is not a JSON object
    """
    logger.debug(
        "Requesting token (grant_type: %s, params: %s)",
        data.get("grant_type"),
        mask_sensitive_data(data),
    )

    try:
        response = await client.post(
            token_url,
            data=data,
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as e:
        logger.error("Token request to %s failed: %s", token_url, e)
        raise _network_error(token_url, e) from e

    if not response.is_success:
        message, body = _error_message(response)
        logger.error(
            "Token request rejected: %s %s - %s",
            response.status_code,
            response.reason_phrase,
            message,
        )
        raise AuthFailedError(
            f"Authentication failed: {message}",
            status_code=response.status_code,
            response_body=body,
        )

    try:
        token_data = response.json()
    except ValueError as e:
        msg = "Authentication failed: Invalid JSON in server response"
        raise AuthServerError(msg) from e

    if not isinstance(token_data, dict):
        msg = "Authentication failed: Invalid server response"
        raise AuthServerError(msg)

    logger.debug("Token response received: %s", mask_sensitive_data(token_data))
    return token_data


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    access_token: str | None = None,
) -> dict[str, Any]:
    """GET a JSON document (userinfo, OpenID configuration).

    Args:
        client: HTTP client
        url: Document URL
        access_token: Optional bearer token

    Returns:
        Decoded JSON object

    Raises:
        AuthNetworkError: If the server cannot be reached
        AuthServerError: If the server responds with an error or non-JSON body
    """
    headers = {"Accept": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"

    try:
        response = await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        raise _network_error(url, e) from e

    if not response.is_success:
        message, _ = _error_message(response)
        msg = f"Request to {url} failed: {response.status_code} {message}"
        raise AuthServerError(msg)

    try:
        data = response.json()
    except ValueError as e:
        msg = f"Invalid JSON response body at {url}"
        raise AuthServerError(msg) from e

    if not isinstance(data, dict):
        msg = f"Invalid JSON response body at {url}"
        raise AuthServerError(msg)
    return data
