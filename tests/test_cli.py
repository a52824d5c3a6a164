"""Tests for the command-line interface."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
import respx
from typer.testing import CliRunner

from authgrant import __version__
from authgrant.cli import app

BASE_URL = "https://auth.example.com"
TOKEN_URL = f"{BASE_URL}/auth/realms/test/protocol/openid-connect/token"
WELL_KNOWN_URL = f"{BASE_URL}/auth/realms/test/.well-known/openid-configuration"

runner = CliRunner()

QUIET = ["--log-level", "ERROR"]
PROVIDER = ["--base-url", BASE_URL, "--realm", "test", "--client-id", "test-client"]


class TestVersion:
    """Tests for version output."""

    def test_version_flag(self) -> None:
        """Test the --version flag."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"authgrant version {__version__}" in result.output

    def test_version_command(self) -> None:
        """Test the version command."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output
        assert "Python" in result.output


class TestList:
    """Tests for the list command."""

    def test_list_empty(self) -> None:
        """Test listing an empty store."""
        result = runner.invoke(app, ["list", "--token-store-type", "memory", *QUIET])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_list_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that the store type is read from the environment."""
        monkeypatch.setenv("AUTHGRANT_TOKEN_STORE_TYPE", "memory")
        monkeypatch.setenv("AUTHGRANT_LOG_LEVEL", "ERROR")

        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == []


class TestRevoke:
    """Tests for the revoke command."""

    def test_revoke_requires_accounts(self) -> None:
        """Test that revoke without accounts or --all fails."""
        result = runner.invoke(app, ["revoke", "--token-store-type", "memory", *QUIET])

        assert result.exit_code == 1
        assert "INVALID_ARGUMENT" in result.output

    def test_revoke_all_empty(self) -> None:
        """Test revoking everything from an empty store."""
        result = runner.invoke(app, ["revoke", "--all", "--token-store-type", "memory", *QUIET])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == []


class TestLogin:
    """Tests for the login command."""

    @respx.mock
    def test_login_client_secret(self, token_response: Callable[..., dict[str, Any]]) -> None:
        """Test a non-interactive login prints the account summary."""
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json=token_response()))

        result = runner.invoke(
            app,
            ["login", *PROVIDER, "--client-secret", "shhh", "--token-store-type", "memory", *QUIET],
        )

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert output["account"] == "jane@example.com"
        assert output["authenticator"] == "ClientSecret"
        assert "access-token-1" not in result.output

    @respx.mock
    def test_login_rejected(self) -> None:
        """Test that provider errors exit with status 1."""
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(401, json={"error_description": "Invalid user credentials"})
        )

        result = runner.invoke(
            app,
            ["login", *PROVIDER, "-u", "jane", "-p", "wrong", "--token-store-type", "memory", *QUIET],
        )

        assert result.exit_code == 1
        assert "Invalid user credentials (AUTH_FAILED)" in result.output

    def test_invalid_config(self) -> None:
        """Test that configuration errors exit with status 1."""
        result = runner.invoke(app, ["login", "--env", "staging", "--token-store-type", "memory"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestServerInfo:
    """Tests for the server-info command."""

    @respx.mock
    def test_server_info(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test printing the OpenID configuration."""
        monkeypatch.setenv("AUTHGRANT_TOKEN_STORE_TYPE", "memory")
        respx.get(WELL_KNOWN_URL).mock(
            return_value=httpx.Response(200, json={"issuer": f"{BASE_URL}/auth/realms/test"})
        )

        result = runner.invoke(app, ["server-info", "--base-url", BASE_URL, "--realm", "test", *QUIET])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"issuer": f"{BASE_URL}/auth/realms/test"}
