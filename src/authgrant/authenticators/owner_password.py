"""Resource owner password credentials grant."""

from __future__ import annotations

from typing import Any

from authgrant.authenticators.base import Authenticator, require_string
from authgrant.oauth.flows import GrantTypes


class OwnerPassword(Authenticator):
    """Authenticates a user with their username and password.

    The password is only sent with the initial grant; once the refresh
    token expires a new login is required.
    """

    name = "OwnerPassword"

    def __init__(self, *, username: str, password: str, **kwargs: Any) -> None:
        self.username = require_string(username, "username")
        self.password = require_string(password, "password")
        super().__init__(**kwargs)

    def hash_params(self) -> dict[str, Any]:
        return {**super().hash_params(), "username": self.username}

    async def grant(self) -> dict[str, Any]:
        return await self.lifecycle.exchange(
            {
                "grant_type": GrantTypes.PASSWORD,
                "username": self.username,
                "password": self.password,
            }
        )
