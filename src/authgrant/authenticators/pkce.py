"""Interactive Authorization Code grant with PKCE."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from authgrant.authenticators.base import Authenticator
from authgrant.config import DEFAULT_INTERACTIVE_LOGIN_TIMEOUT
from authgrant.exceptions import AuthInvalidTokenError, InvalidArgumentError
from authgrant.models import LoginResult
from authgrant.oauth.flows import GrantTypes
from authgrant.oauth.interactive import FlowState, InteractiveFlow, ManualLogin
from authgrant.oauth.pkce import PKCEPair


def _validate_code(code: Any) -> str:
    if not isinstance(code, str) or not code:
        msg = "Expected code for interactive authentication to be a non-empty string"
        raise InvalidArgumentError(msg)
    return code


def _validate_timeout(timeout: Any) -> float:
    if isinstance(timeout, bool) or not isinstance(timeout, int | float) or timeout <= 0:
        msg = "Expected timeout to be a positive number of milliseconds"
        raise InvalidArgumentError(msg)
    return timeout


class PKCE(Authenticator):
    """Authenticates a user in the browser.

    Runs the Authorization Code flow with a PKCE challenge, capturing
    the redirect on a localhost listener.

    Args:
        interactive_login_timeout: Default milliseconds to wait for the redirect
        **kwargs: Forwarded to :class:`Authenticator`
    """

    name = "PKCE"

    def __init__(
        self,
        *,
        interactive_login_timeout: float = DEFAULT_INTERACTIVE_LOGIN_TIMEOUT,
        **kwargs: Any,
    ) -> None:
        self.interactive_login_timeout = _validate_timeout(interactive_login_timeout)
        super().__init__(**kwargs)
        # Replaced by each interactive login; a direct code exchange defaults
        # to the verifier of the most recent one
        self.pkce = PKCEPair.generate()
        self.flow: InteractiveFlow | None = None

    async def login(
        self,
        *,
        force: bool = False,
        code: str | None = None,
        code_verifier: str | None = None,
        redirect_uri: str | None = None,
        manual: bool = False,
        app: str | Sequence[str] | None = None,
        wait: bool = False,
        timeout: float | None = None,
    ) -> LoginResult | ManualLogin:
        """Log in through the browser.

        Args:
            force: Ignore a stored credential and always log in
            code: Authorization code obtained out of band; skips the browser
            code_verifier: Verifier matching ``code`` (defaults to the verifier
                of the most recent interactive login)
            redirect_uri: Redirect URI the code was issued for
            manual: Return a :class:`ManualLogin` instead of opening a browser
            app: Program to open the URL with instead of the default browser
            wait: Wait for ``app`` to exit before returning
            timeout: Milliseconds to wait for the redirect

        Returns:
            LoginResult, or ManualLogin when ``manual`` is set

        Raises:
            InvalidArgumentError: If the code or timeout is malformed
            AuthTimeoutError: If no redirect arrives in time
            AuthFailedError: If the provider rejects the login
        """
        if code is not None:
            response = await self.exchange_code(
                _validate_code(code),
                code_verifier or self.pkce.code_verifier,
                redirect_uri,
            )
            record = await self.lifecycle.complete(response)
            return self.lifecycle.result(record)

        timeout = _validate_timeout(
            self.interactive_login_timeout if timeout is None else timeout
        )

        if not force and not manual:
            existing = await self.lifecycle.reuse()
            if existing is not None:
                return existing

        flow = await self._start_flow(timeout)
        url = flow.url

        if manual:
            self.logger.info("Open %s to log in", url)
            return ManualLogin(flow, lambda: self._finish(flow))

        self.logger.info("Opening browser to log in")
        await flow.launch(app)
        return await self._finish(flow, wait_for_app=wait)

    async def _start_flow(self, timeout: float) -> InteractiveFlow:
        self.pkce = PKCEPair.generate()
        flow = InteractiveFlow(
            self.endpoints.authorization_url,
            self.client_id,
            self.pkce,
            timeout,
        )
        self.flow = flow
        await flow.start()
        return flow

    async def _finish(self, flow: InteractiveFlow, wait_for_app: bool = False) -> LoginResult:
        code = await flow.wait(wait_for_app)
        try:
            response = await self.exchange_code(code, flow.code_verifier, flow.redirect_uri)
            record = await self.lifecycle.complete(response)
        except BaseException:
            flow.state = FlowState.FAILED
            raise
        flow.state = FlowState.SUCCESS
        return self.lifecycle.result(record)

    async def exchange_code(
        self,
        code: str,
        code_verifier: str,
        redirect_uri: str | None = None,
    ) -> dict[str, Any]:
        """Exchange an authorization code for tokens."""
        params = {
            "grant_type": GrantTypes.AUTHORIZATION_CODE,
            "code": code,
            "code_verifier": code_verifier,
        }
        if redirect_uri:
            params["redirect_uri"] = redirect_uri
        return await self.lifecycle.exchange(params)

    async def grant(self) -> dict[str, Any]:
        """Interactive logins need the user, so there is no silent grant."""
        msg = "No credential available, login required"
        raise AuthInvalidTokenError(msg)
