"""Interactive Authorization Code flow controller.

Coordinates one browser login: the redirect listener, the browser
launch, the timeout and cancellation. Whichever of redirect, timeout or
cancel happens first settles the login; later signals are ignored.
"""

from __future__ import annotations

import asyncio
import contextlib
import webbrowser
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import TYPE_CHECKING

from authgrant.exceptions import (
    AuthCancelledError,
    AuthError,
    AuthFailedError,
    AuthTimeoutError,
    InvalidArgumentError,
)
from authgrant.logging_config import get_logger
from authgrant.oauth.callback_server import CallbackServer
from authgrant.oauth.pkce import PKCEPair, build_authorization_url

if TYPE_CHECKING:
    from authgrant.models import LoginResult

logger = get_logger(__name__)


class FlowState(str, Enum):
    """Interactive login states."""

    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING_CODE = "exchanging_code"
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class InteractiveFlow:
    """A single interactive login attempt.

    Args:
        authorization_url: Provider authorize endpoint
        client_id: OAuth client identifier
        pkce: Verifier and challenge for this login
        timeout: Milliseconds to wait for the redirect
    """

    def __init__(
        self,
        authorization_url: str,
        client_id: str,
        pkce: PKCEPair,
        timeout: float,
    ) -> None:
        self.authorization_url = authorization_url
        self.client_id = client_id
        self.pkce = pkce
        self.timeout = timeout
        self.state = FlowState.IDLE
        self.url: str | None = None

        self._server = CallbackServer(self._handle_redirect)
        self._latch: asyncio.Future[str] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._closing: asyncio.Future[None] | None = None
        self._stopping: asyncio.Future[None] | None = None

    @property
    def redirect_uri(self) -> str:
        return self._server.redirect_uri

    @property
    def code_verifier(self) -> str:
        return self.pkce.code_verifier

    @property
    def settled(self) -> bool:
        return self._latch is not None and self._latch.done()

    async def start(self) -> str:
        """Start the listener and arm the timeout.

        Returns:
            The authorize URL to open in a browser
        """
        loop = asyncio.get_running_loop()
        self._latch = loop.create_future()

        redirect_uri = await self._server.start()
        self.url = build_authorization_url(
            self.authorization_url,
            self.client_id,
            redirect_uri,
            self.pkce.code_challenge,
        )
        self._timer = loop.call_later(self.timeout / 1000, self._on_timeout)
        self.state = FlowState.AWAITING_REDIRECT
        logger.debug("Waiting up to %sms for the login redirect", self.timeout)
        return self.url

    def _settle(self, state: FlowState, code: str | None = None, error: AuthError | None = None) -> bool:
        if self._latch is None or self._latch.done():
            return False
        if error is not None:
            self._latch.set_exception(error)
        else:
            self._latch.set_result(code or "")
        self.state = state
        if self._timer is not None:
            self._timer.cancel()
        return True

    def _handle_redirect(self, params: dict[str, str]) -> str | None:
        if self.settled:
            return "This login is no longer pending."

        if params.get("error"):
            message = params.get("error_description") or params["error"]
            logger.error("Provider returned an error to the redirect: %s", message)
            self._settle(FlowState.FAILED, error=AuthFailedError(f"Authentication failed: {message}"))
            return message

        code = params.get("code")
        if not code:
            error = InvalidArgumentError(
                "Expected code for interactive authentication to be a non-empty string"
            )
            self._settle(FlowState.FAILED, error=error)
            return error.message

        logger.debug("Received authorization code on redirect")
        if self._settle(FlowState.EXCHANGING_CODE, code=code):
            # Stop after this response has been handed back to the listener
            asyncio.get_running_loop().call_soon(self._stop_listener)
        return None

    def _stop_listener(self) -> asyncio.Future[None]:
        if self._stopping is None:
            self._stopping = asyncio.ensure_future(self._server.stop())
        return self._stopping

    def _on_timeout(self) -> None:
        if self._settle(FlowState.TIMED_OUT, error=AuthTimeoutError(timeout=self.timeout)):
            logger.warning("Interactive login timed out after %sms", self.timeout)
            asyncio.ensure_future(self.close())

    def cancel(self) -> bool:
        """Settle the login as cancelled.

        Returns:
            True if this call cancelled the login
        """
        cancelled = self._settle(FlowState.CANCELLED, error=AuthCancelledError())
        if cancelled:
            logger.info("Interactive login cancelled")
        return cancelled

    async def launch(self, app: str | Sequence[str] | None = None) -> None:
        """Open the authorize URL in a browser.

        Args:
            app: Program (and arguments) to launch with the URL appended;
                the system default browser is used when omitted
        """
        if self.url is None:
            msg = "Interactive login has not been started"
            raise RuntimeError(msg)

        if app:
            command = [app] if isinstance(app, str) else list(app)
            try:
                self._process = await asyncio.create_subprocess_exec(
                    *command,
                    self.url,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL,
                )
            except OSError as e:
                logger.error("Failed to launch %s: %s", command[0], e)
                self._settle(
                    FlowState.FAILED,
                    error=AuthFailedError(f"Authentication failed: Unable to launch {command[0]}: {e}"),
                )
            return

        loop = asyncio.get_running_loop()
        opened = await loop.run_in_executor(None, webbrowser.open, self.url)
        if not opened:
            logger.warning("Could not open a browser. Visit this URL to log in: %s", self.url)

    async def wait(self, wait_for_app: bool = False) -> str:
        """Wait for the login to settle.

        Args:
            wait_for_app: Also wait for the launched program to exit

        Returns:
            The authorization code

        Raises:
            AuthTimeoutError: If no redirect arrives in time
            AuthCancelledError: If the login was cancelled
            AuthFailedError: If the provider redirected with an error
            InvalidArgumentError: If the redirect carried no code
        """
        if self._latch is None:
            msg = "Interactive login has not been started"
            raise RuntimeError(msg)

        try:
            code = await asyncio.shield(self._latch)
            if wait_for_app and self._process is not None:
                await self._process.wait()
            return code
        finally:
            await self.close()

    async def close(self) -> None:
        """Tear down the timer, listener and browser process. Idempotent."""
        if self._closing is None:
            self._closing = asyncio.ensure_future(self._close())
        await asyncio.shield(self._closing)

    async def _close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

        # Settle so nothing waits forever on a torn down listener
        self.cancel()
        if self._latch is not None and not self._latch.cancelled():
            # Mark the outcome as retrieved
            self._latch.exception()

        await self._stop_listener()

        process = self._process
        if process is not None and process.returncode is None and self.state != FlowState.EXCHANGING_CODE:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            await process.wait()


class ManualLogin:
    """Handle for an interactive login driven by the caller.

    The caller opens :attr:`url` themselves, then awaits :meth:`wait` for
    the login result or calls :meth:`cancel`.
    """

    def __init__(self, flow: InteractiveFlow, complete: Callable[[], Awaitable[LoginResult]]) -> None:
        self._flow = flow
        self._complete = complete
        self._task: asyncio.Future[LoginResult] | None = None

    @property
    def url(self) -> str:
        return self._flow.url or ""

    @property
    def redirect_uri(self) -> str:
        return self._flow.redirect_uri

    @property
    def state(self) -> FlowState:
        return self._flow.state

    async def cancel(self) -> None:
        """Cancel the login and stop the listener. Safe to call repeatedly."""
        self._flow.cancel()
        await self._flow.close()

    async def wait(self) -> LoginResult:
        """Wait for the redirect and exchange the code."""
        if self._task is None:
            self._task = asyncio.ensure_future(self._complete())
        return await asyncio.shield(self._task)
