"""Identity provider endpoint resolution.

Computes the realm-scoped OpenID Connect endpoints from the provider
base URL, and optionally refines them from the provider's published
OpenID configuration document.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from authgrant.exceptions import InvalidArgumentError
from authgrant.logging_config import get_logger
from authgrant.oauth.flows import fetch_json

if TYPE_CHECKING:
    import httpx

logger = get_logger(__name__)

# OpenID configuration keys -> Endpoints attributes
_DISCOVERY_KEYS = {
    "authorization_endpoint": "authorization_url",
    "token_endpoint": "token_url",
    "end_session_endpoint": "logout_url",
    "userinfo_endpoint": "user_info_url",
}


@dataclass(frozen=True)
class Endpoints:
    """Provider endpoints for one base URL and realm."""

    authorization_url: str
    token_url: str
    logout_url: str
    user_info_url: str
    well_known_url: str


def get_endpoints(base_url: str | None, realm: str | None) -> Endpoints:
    """Compute the provider endpoints for a realm.

    Args:
        base_url: Identity provider base URL
        realm: Realm name

    Returns:
        Endpoints

    Raises:
        InvalidArgumentError: If base_url or realm is empty
    """
    if not base_url or not isinstance(base_url, str):
        msg = "Expected base URL to be a non-empty string"
        raise InvalidArgumentError(msg)
    if not realm or not isinstance(realm, str):
        msg = "Expected realm to be a non-empty string"
        raise InvalidArgumentError(msg)

    realm_url = f"{base_url.rstrip('/')}/auth/realms/{realm}"
    oidc_url = f"{realm_url}/protocol/openid-connect"
    return Endpoints(
        authorization_url=f"{oidc_url}/auth",
        token_url=f"{oidc_url}/token",
        logout_url=f"{oidc_url}/logout",
        user_info_url=f"{oidc_url}/userinfo",
        well_known_url=f"{realm_url}/.well-known/openid-configuration",
    )


def apply_discovery(endpoints: Endpoints, document: dict[str, Any]) -> Endpoints:
    """Override endpoints with the values published in an OpenID configuration."""
    overrides = {
        attr: document[key]
        for key, attr in _DISCOVERY_KEYS.items()
        if isinstance(document.get(key), str) and document[key]
    }
    return replace(endpoints, **overrides)


async def fetch_server_info(client: httpx.AsyncClient, url: str) -> dict[str, Any]:
    """Fetch the provider's OpenID configuration document.

    Args:
        client: HTTP client
        url: Well-known configuration URL

    Returns:
        Provider metadata
    """
    logger.debug("Fetching server info from %s", url)
    return await fetch_json(client, url)


async def discover_endpoints(client: httpx.AsyncClient, endpoints: Endpoints) -> Endpoints:
    """Refine endpoints from the live OpenID configuration.

    Args:
        client: HTTP client
        endpoints: Statically computed endpoints

    Returns:
        Endpoints with discovered values applied
    """
    document = await fetch_server_info(client, endpoints.well_known_url)
    discovered = apply_discovery(endpoints, document)
    if discovered != endpoints:
        logger.debug("Discovered endpoints differ from defaults: %s", discovered)
    return discovered
