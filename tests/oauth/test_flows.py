"""Tests for token endpoint primitives."""

from __future__ import annotations

import errno
import socket
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs

import httpx
import pytest
import respx

from authgrant.exceptions import (
    AuthFailedError,
    AuthInvalidServerResponseError,
    AuthNetworkError,
    AuthServerError,
)
from authgrant.oauth.flows import (
    GrantTypes,
    TokenSet,
    fetch_json,
    request_token,
    transport_error_code,
)

TOKEN_URL = "https://auth.example.com/token"


class TestTokenSet:
    """Tests for TokenSet dataclass."""

    def test_from_token_response(self) -> None:
        """Test creating TokenSet from response."""
        now = datetime.now(UTC)
        response = {
            "access_token": "access123",
            "refresh_token": "refresh123",
            "expires_in": 3600,
            "refresh_expires_in": 7200,
            "token_type": "Bearer",
            "scope": "openid",
            "id_token": "id123",
        }

        token_set = TokenSet.from_token_response(response, now=now)

        assert token_set.access_token == "access123"
        assert token_set.refresh_token == "refresh123"
        assert token_set.expires_at == now + timedelta(seconds=3600)
        assert token_set.refresh_expires_at == now + timedelta(seconds=7200)
        assert token_set.scope == "openid"
        assert token_set.id_token == "id123"

    def test_non_expiring_refresh_token(self) -> None:
        """Test that a zero refresh_expires_in means no refresh expiry."""
        token_set = TokenSet.from_token_response(
            {"access_token": "a", "refresh_token": "r", "expires_in": 60, "refresh_expires_in": 0}
        )

        assert token_set.refresh_token == "r"
        assert token_set.refresh_expires_at is None

    def test_no_refresh_token(self) -> None:
        """Test that refresh expiry is ignored without a refresh token."""
        token_set = TokenSet.from_token_response(
            {"access_token": "a", "expires_in": 60, "refresh_expires_in": 600}
        )

        assert token_set.refresh_token is None
        assert token_set.refresh_expires_at is None

    def test_string_expires_in(self) -> None:
        """Test that numeric strings are accepted for expires_in."""
        now = datetime.now(UTC)
        token_set = TokenSet.from_token_response({"access_token": "a", "expires_in": "90"}, now=now)
        assert token_set.expires_at == now + timedelta(seconds=90)

    def test_missing_access_token(self) -> None:
        """Test that a response without access_token is a protocol violation."""
        with pytest.raises(AuthInvalidServerResponseError) as exc_info:
            TokenSet.from_token_response({"expires_in": 60})

        assert exc_info.value.code == "AUTH_INVALID_SERVER_RESPONSE"
        assert str(exc_info.value) == "Authentication failed: Invalid server response"

    @pytest.mark.parametrize("expires_in", [None, "soon", -5, True])
    def test_invalid_expiry(self, expires_in: object) -> None:
        """Test that a missing or malformed expires_in is a server error."""
        response = {"access_token": "a"}
        if expires_in is not None:
            response["expires_in"] = expires_in  # type: ignore[assignment]

        with pytest.raises(AuthServerError) as exc_info:
            TokenSet.from_token_response(response)

        assert exc_info.value.code == "AUTH_SERVER_ERROR"


class TestRequestToken:
    """Tests for request_token helper."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_posts_form(self) -> None:
        """Test that grant parameters are form-encoded."""
        route = respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "a", "expires_in": 60})
        )

        async with httpx.AsyncClient() as client:
            data = await request_token(
                client,
                TOKEN_URL,
                {"client_id": "c", "grant_type": GrantTypes.CLIENT_CREDENTIALS},
            )

        assert data["access_token"] == "a"
        request = route.calls.last.request
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert parse_qs(request.content.decode()) == {
            "client_id": ["c"],
            "grant_type": ["client_credentials"],
        }

    @respx.mock
    @pytest.mark.asyncio
    async def test_error_description(self) -> None:
        """Test that the provider error description is surfaced."""
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(
                401,
                json={"error": "invalid_client", "error_description": "Invalid client secret"},
            )
        )

        async with httpx.AsyncClient() as client:
            with pytest.raises(AuthFailedError) as exc_info:
                await request_token(client, TOKEN_URL, {"client_id": "c"})

        assert exc_info.value.code == "AUTH_FAILED"
        assert exc_info.value.status_code == 401
        assert str(exc_info.value) == "Authentication failed: Invalid client secret"

    @respx.mock
    @pytest.mark.asyncio
    async def test_error_without_description(self) -> None:
        """Test falling back to the error field."""
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(400, json={"error": "invalid_grant"}))

        async with httpx.AsyncClient() as client:
            with pytest.raises(AuthFailedError, match="Authentication failed: invalid_grant"):
                await request_token(client, TOKEN_URL, {"client_id": "c"})

    @respx.mock
    @pytest.mark.asyncio
    async def test_error_text_body(self) -> None:
        """Test falling back to the body text."""
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(503, text="Maintenance"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(AuthFailedError, match="Authentication failed: Maintenance"):
                await request_token(client, TOKEN_URL, {"client_id": "c"})

    @respx.mock
    @pytest.mark.asyncio
    async def test_error_empty_body(self) -> None:
        """Test falling back to the reason phrase."""
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(403))

        async with httpx.AsyncClient() as client:
            with pytest.raises(AuthFailedError, match="Authentication failed: Forbidden"):
                await request_token(client, TOKEN_URL, {"client_id": "c"})

    @respx.mock
    @pytest.mark.asyncio
    async def test_non_json_success(self) -> None:
        """Test that a non-JSON 2xx body is a server error."""
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, text="<html></html>"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(AuthServerError):
                await request_token(client, TOKEN_URL, {"client_id": "c"})

    @respx.mock
    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """Test that timeouts map to a network error."""
        respx.post(TOKEN_URL).mock(side_effect=httpx.ReadTimeout("timed out"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(AuthNetworkError) as exc_info:
                await request_token(client, TOKEN_URL, {"client_id": "c"})

        assert exc_info.value.code == "AUTH_NETWORK_ERROR"
        assert exc_info.value.transport_code == "ETIMEDOUT"
        assert TOKEN_URL in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_refused(self) -> None:
        """Test that a refused connection carries ECONNREFUSED."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]
        url = f"http://127.0.0.1:{port}/token"

        async with httpx.AsyncClient() as client:
            with pytest.raises(AuthNetworkError) as exc_info:
                await request_token(client, url, {"client_id": "c"})

        assert exc_info.value.transport_code == "ECONNREFUSED"
        assert str(exc_info.value).startswith(f"Request to {url} failed, reason:")


class TestTransportErrorCode:
    """Tests for transport_error_code."""

    def test_walks_cause_chain(self) -> None:
        """Test finding the errno behind wrapped exceptions."""
        refused = ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused")
        wrapper = OSError("All connection attempts failed")
        wrapper.__cause__ = refused
        exc = httpx.ConnectError("connect failed")
        exc.__cause__ = wrapper

        assert transport_error_code(exc) == "ECONNREFUSED"

    def test_exception_group(self) -> None:
        """Test finding the errno inside an exception group."""
        group = ExceptionGroup(
            "multiple attempts failed",
            [ConnectionResetError(errno.ECONNRESET, "reset")],
        )
        exc = httpx.ConnectError("connect failed")
        exc.__cause__ = group

        assert transport_error_code(exc) == "ECONNRESET"

    def test_falls_back_to_class_name(self) -> None:
        """Test the fallback when no errno is available."""
        assert transport_error_code(httpx.RemoteProtocolError("bad")) == "RemoteProtocolError"


class TestFetchJson:
    """Tests for fetch_json helper."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_bearer_token(self) -> None:
        """Test that the access token is sent as a bearer token."""
        route = respx.get("https://auth.example.com/userinfo").mock(
            return_value=httpx.Response(200, json={"email": "jane@example.com"})
        )

        async with httpx.AsyncClient() as client:
            data = await fetch_json(client, "https://auth.example.com/userinfo", access_token="t")

        assert data == {"email": "jane@example.com"}
        assert route.calls.last.request.headers["authorization"] == "Bearer t"

    @respx.mock
    @pytest.mark.asyncio
    async def test_error_status(self) -> None:
        """Test that error responses raise AuthServerError."""
        respx.get("https://auth.example.com/doc").mock(return_value=httpx.Response(404))

        async with httpx.AsyncClient() as client:
            with pytest.raises(AuthServerError, match="404"):
                await fetch_json(client, "https://auth.example.com/doc")

    @respx.mock
    @pytest.mark.asyncio
    async def test_non_object_body(self) -> None:
        """Test that a JSON array is rejected."""
        respx.get("https://auth.example.com/doc").mock(return_value=httpx.Response(200, json=[1]))

        async with httpx.AsyncClient() as client:
            with pytest.raises(AuthServerError, match="Invalid JSON"):
                await fetch_json(client, "https://auth.example.com/doc")
