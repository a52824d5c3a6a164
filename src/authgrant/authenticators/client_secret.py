"""Client credentials grant."""

from __future__ import annotations

import hashlib
from typing import Any

from authgrant.authenticators.base import Authenticator, require_string
from authgrant.oauth.flows import GrantTypes


class ClientSecret(Authenticator):
    """Authenticates a confidential client with its client secret.

    Tokens are re-issued silently when they can no longer be refreshed.
    """

    name = "ClientSecret"
    reauthenticates = True

    def __init__(self, *, client_secret: str, **kwargs: Any) -> None:
        self.client_secret = require_string(client_secret, "client secret")
        super().__init__(**kwargs)

    def hash_params(self) -> dict[str, Any]:
        return {
            **super().hash_params(),
            "client_secret": hashlib.sha256(self.client_secret.encode()).hexdigest(),
        }

    def client_auth_params(self) -> dict[str, str]:
        return {"client_secret": self.client_secret}

    async def grant(self) -> dict[str, Any]:
        return await self.lifecycle.exchange({"grant_type": GrantTypes.CLIENT_CREDENTIALS})
