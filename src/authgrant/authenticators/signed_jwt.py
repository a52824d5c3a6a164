"""JWT bearer grant with a signed client assertion."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from authgrant.authenticators.base import Authenticator, require_string
from authgrant.exceptions import AuthSigningError, InvalidArgumentError
from authgrant.oauth.flows import GrantTypes
from authgrant.security import generate_secure_token

ASSERTION_ALGORITHM = "RS256"
# Assertion lifetime in seconds
ASSERTION_LIFETIME = 60


class SignedJWT(Authenticator):
    """Authenticates a service with a JWT signed by its private key.

    The key is read from ``secret_file`` each time an assertion is
    signed. Tokens are re-issued silently when they can no longer be
    refreshed.
    """

    name = "SignedJWT"
    reauthenticates = True

    def __init__(self, *, secret_file: str | Path, **kwargs: Any) -> None:
        if isinstance(secret_file, Path):
            secret_file = str(secret_file)
        path = Path(require_string(secret_file, "secret file")).expanduser()
        if not path.is_file():
            msg = f"Secret file does not exist: {path}"
            raise InvalidArgumentError(msg)
        self.secret_file = path
        super().__init__(**kwargs)

    def hash_params(self) -> dict[str, Any]:
        return {**super().hash_params(), "secret_file": str(self.secret_file)}

    def _load_key(self) -> rsa.RSAPrivateKey:
        try:
            data = self.secret_file.read_bytes()
        except OSError as e:
            msg = f"Unable to read secret file {self.secret_file}: {e.strerror or e}"
            raise InvalidArgumentError(msg) from e

        try:
            key = load_pem_private_key(data, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            msg = f"Unable to load private key from {self.secret_file}: {e}"
            raise AuthSigningError(msg) from e

        if not isinstance(key, rsa.RSAPrivateKey):
            msg = f"Expected an RSA private key in {self.secret_file}"
            raise AuthSigningError(msg)
        return key

    def create_assertion(self) -> str:
        """Sign a client assertion for the token endpoint.

        Returns:
            Compact JWT

        Raises:
            InvalidArgumentError: If the secret file cannot be read
            AuthSigningError: If the key is malformed or signing fails
        """
        key = self._load_key()
        issued_at = int(time.time())
        claims = {
            "iss": self.client_id,
            "sub": self.client_id,
            "aud": self.endpoints.token_url,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME,
            "jti": generate_secure_token(16),
        }
        try:
            return jwt.encode(claims, key, algorithm=ASSERTION_ALGORITHM)
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            msg = f"Unable to sign client assertion: {e}"
            raise AuthSigningError(msg) from e

    async def grant(self) -> dict[str, Any]:
        self.logger.debug("Signing client assertion for %s", self.client_id)
        return await self.lifecycle.exchange(
            {
                "grant_type": GrantTypes.JWT_BEARER,
                "assertion": self.create_assertion(),
            }
        )
