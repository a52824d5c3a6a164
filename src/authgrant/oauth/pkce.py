"""PKCE (Proof Key for Code Exchange) implementation.

Implements RFC 7636 for the interactive Authorization Code flow and
builds the provider authorize URL carrying the S256 challenge.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

from authgrant.oauth.flows import GrantTypes

CODE_CHALLENGE_METHOD = "S256"


@dataclass(frozen=True)
class PKCEPair:
    """PKCE code verifier and challenge pair.

    Attributes:
        code_verifier: Random string sent with the token request
        code_challenge: BASE64URL(SHA256(code_verifier)) sent with the auth request
    """

    code_verifier: str
    code_challenge: str

    @classmethod
    def generate(cls, nbytes: int = 32) -> PKCEPair:
        """Create a new verifier/challenge pair."""
        verifier = generate_code_verifier(nbytes)
        return cls(code_verifier=verifier, code_challenge=generate_code_challenge(verifier))


def generate_code_verifier(nbytes: int = 32) -> str:
    """Generate a cryptographically random code verifier.

    Creates a code verifier string of 43-128 characters using
    URL-safe characters as specified in RFC 7636.

    Args:
        nbytes: Number of random bytes (32 to 96)

    Returns:
        URL-safe code verifier string

    Raises:
        ValueError: If nbytes is outside the range RFC 7636 allows
    """
    if nbytes < 32:
        msg = "nbytes must be at least 32 for sufficient entropy"
        raise ValueError(msg)
    if nbytes > 96:
        msg = "nbytes must be at most 96 to keep the verifier within 128 characters"
        raise ValueError(msg)

    return secrets.token_urlsafe(nbytes)


def generate_code_challenge(verifier: str) -> str:
    """Compute the S256 code challenge: BASE64URL(SHA256(code_verifier)).

    Args:
        verifier: The code verifier string

    Returns:
        Base64url-encoded SHA256 hash (without padding)
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def build_authorization_url(
    authorization_url: str,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    scope: str = "openid",
) -> str:
    """Build the provider authorize URL for an interactive login.

    Parameters are emitted in sorted order so the URL is stable for a
    given challenge and redirect URI.

    Args:
        authorization_url: Provider authorize endpoint
        client_id: OAuth client identifier
        redirect_uri: Local listener callback URI
        code_challenge: S256 challenge of the login's code verifier
        scope: Requested scope

    Returns:
        Fully formed authorize URL
    """
    params = {
        "access_type": "offline",
        "client_id": client_id,
        "code_challenge": code_challenge,
        "code_challenge_method": CODE_CHALLENGE_METHOD,
        "grant_type": GrantTypes.AUTHORIZATION_CODE,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scope,
    }
    return f"{authorization_url}?{urlencode(sorted(params.items()))}"
