"""Grant strategies."""

from authgrant.authenticators.base import Authenticator, fingerprint
from authgrant.authenticators.client_secret import ClientSecret
from authgrant.authenticators.lifecycle import TokenLifecycle
from authgrant.authenticators.owner_password import OwnerPassword
from authgrant.authenticators.pkce import PKCE
from authgrant.authenticators.signed_jwt import SignedJWT

__all__ = [
    "PKCE",
    "Authenticator",
    "ClientSecret",
    "OwnerPassword",
    "SignedJWT",
    "TokenLifecycle",
    "fingerprint",
]
