"""authgrant.

OAuth 2.0 / OpenID Connect credential issuance and token lifecycle
client with pluggable token storage.
"""

__version__ = "0.1.0"

from authgrant.auth import Auth
from authgrant.authenticators import PKCE, Authenticator, ClientSecret, OwnerPassword, SignedJWT
from authgrant.config import ENVIRONMENTS, AuthConfig, ConfigError, load_config, resolve_options
from authgrant.endpoints import Endpoints, get_endpoints
from authgrant.exceptions import AuthError
from authgrant.models import CredentialRecord, LoginResult
from authgrant.oauth.interactive import ManualLogin
from authgrant.oauth.token_store import (
    FileTokenStore,
    KeyringTokenStore,
    MemoryTokenStore,
    TokenStore,
)

__all__ = [
    "ENVIRONMENTS",
    "PKCE",
    "Auth",
    "AuthConfig",
    "AuthError",
    "Authenticator",
    "ClientSecret",
    "ConfigError",
    "CredentialRecord",
    "Endpoints",
    "FileTokenStore",
    "KeyringTokenStore",
    "LoginResult",
    "ManualLogin",
    "MemoryTokenStore",
    "OwnerPassword",
    "SignedJWT",
    "TokenStore",
    "__version__",
    "get_endpoints",
    "load_config",
    "resolve_options",
]
