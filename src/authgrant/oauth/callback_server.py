"""Ephemeral localhost listener for OAuth2 redirect capture.

Serves a single callback route on a randomly assigned port. The route
path embeds a random request id; redirects to any other path are
answered with 404 and never reach the login.
"""

from __future__ import annotations

import asyncio
import contextlib
import html
import socket
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING

import uvicorn
from starlette.applications import Starlette
from starlette.responses import HTMLResponse, PlainTextResponse
from starlette.routing import Route

from authgrant.logging_config import get_logger
from authgrant.security import constant_time_equals, generate_secure_token

if TYPE_CHECKING:
    from starlette.requests import Request

logger = get_logger(__name__)

LISTENER_HOST = "127.0.0.1"

_PAGE = """<!DOCTYPE html>
<html>
<head><title>{title}</title>
<style>
  body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
         display: flex; align-items: center; justify-content: center;
         height: 100vh; margin: 0; background: #f0f2f5; color: #1a1a2e; }}
  .card {{ text-align: center; padding: 2rem 3rem; background: white;
          border-radius: 12px; box-shadow: 0 2px 12px rgba(0,0,0,.08); }}
</style></head>
<body><div class="card">
  <h1>{title}</h1>
  <p>{message}</p>
</div></body></html>"""

_SECURITY_HEADERS = {
    "Cache-Control": "no-store",
    "Content-Security-Policy": "default-src 'none'; style-src 'unsafe-inline'",
    "X-Content-Type-Options": "nosniff",
}

# Called with the redirect query parameters; returns an error message for
# the browser page, or None on success
RedirectHandler = Callable[[dict[str, str]], "str | None"]


def _render(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    content = _PAGE.format(title=html.escape(title), message=html.escape(message))
    return HTMLResponse(content, status_code=status_code, headers=_SECURITY_HEADERS)


class _ListenerServer(uvicorn.Server):
    """uvicorn server that leaves the host process signal handlers alone."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class CallbackServer:
    """Localhost redirect listener for one interactive login.

    Args:
        on_redirect: Invoked once per request on the callback path with the
            query parameters
        host: Bind address
    """

    def __init__(self, on_redirect: RedirectHandler, host: str = LISTENER_HOST) -> None:
        self._on_redirect = on_redirect
        self._host = host
        self.request_id = generate_secure_token(16)
        self._socket: socket.socket | None = None
        self._server: _ListenerServer | None = None
        self._task: asyncio.Task[None] | None = None
        self._port = 0

    @property
    def port(self) -> int:
        return self._port

    @property
    def redirect_uri(self) -> str:
        """The redirect URI to register with the authorize request."""
        return f"http://{self._host}:{self._port}/callback/{self.request_id}"

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _build_app(self) -> Starlette:
        async def callback(request: Request) -> HTMLResponse | PlainTextResponse:
            if not constant_time_equals(request.path_params["request_id"], self.request_id):
                return PlainTextResponse("Not Found", status_code=404)

            params = dict(request.query_params)
            error = self._on_redirect(params)
            if error:
                return _render("Authentication Failed", error, status_code=400)
            return _render("Authentication Complete", "You can close this window.")

        return Starlette(routes=[Route("/callback/{request_id}", callback, methods=["GET"])])

    async def start(self) -> str:
        """Bind a free port and start serving.

        Returns:
            The redirect URI
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self._host, 0))
        self._socket = sock
        self._port = sock.getsockname()[1]

        config = uvicorn.Config(
            self._build_app(),
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=1,
        )
        self._server = _ListenerServer(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._task.done():
                # Startup failed; surface the error
                self._task.result()
                break
            await asyncio.sleep(0.01)

        logger.debug("Redirect listener started on %s", self.redirect_uri)
        return self.redirect_uri

    async def stop(self) -> None:
        """Stop the listener. Safe to call more than once."""
        server, task, sock = self._server, self._task, self._socket
        self._server = self._task = self._socket = None

        if server is not None:
            server.should_exit = True
        if task is not None:
            try:
                await task
            except Exception as e:
                logger.debug("Redirect listener exited with error: %s", e)
        if sock is not None:
            sock.close()
            logger.debug("Redirect listener on port %d stopped", self._port)
