"""Tests for security module."""

from __future__ import annotations

from authgrant.security import (
    DEFAULT_SENSITIVE_KEYS,
    constant_time_equals,
    generate_secure_token,
    mask_sensitive_data,
    redact,
)


class TestRedact:
    """Tests for redact function."""

    def test_redact_non_empty(self) -> None:
        """Test that non-empty values are redacted."""
        assert redact("secret123") == "***"
        assert redact("a") == "***"

    def test_redact_empty(self) -> None:
        """Test that empty values show <empty>."""
        assert redact("") == "<empty>"
        assert redact(None) == "<empty>"


class TestConstantTimeEquals:
    """Tests for constant_time_equals function."""

    def test_equal_strings(self) -> None:
        """Test equal strings return True."""
        assert constant_time_equals("abc", "abc") is True

    def test_unequal_strings(self) -> None:
        """Test unequal strings return False."""
        assert constant_time_equals("abc", "def") is False

    def test_none_values(self) -> None:
        """Test None handling."""
        assert constant_time_equals(None, None) is True
        assert constant_time_equals(None, "abc") is False
        assert constant_time_equals("abc", None) is False


class TestGenerateSecureToken:
    """Tests for generate_secure_token function."""

    def test_generates_string(self) -> None:
        """Test that token is a string."""
        token = generate_secure_token()
        assert isinstance(token, str)

    def test_generates_unique(self) -> None:
        """Test that tokens are unique."""
        tokens = {generate_secure_token() for _ in range(100)}
        assert len(tokens) == 100

    def test_custom_length(self) -> None:
        """Test custom byte length."""
        token_16 = generate_secure_token(16)
        token_64 = generate_secure_token(64)
        assert len(token_16) < len(token_64)


class TestMaskSensitiveData:
    """Tests for mask_sensitive_data function."""

    def test_masks_sensitive_keys(self) -> None:
        """Test that sensitive keys are masked."""
        data = {
            "username": "john",
            "password": "secret123",
            "access_token": "abc123",
        }
        masked = mask_sensitive_data(data)

        assert masked["username"] == "john"
        assert masked["password"] == "***"
        assert masked["access_token"] == "***"

    def test_handles_nested_dicts(self) -> None:
        """Test that nested dicts are handled."""
        data = {
            "user": {
                "name": "john",
                "api_token": "secret",
            }
        }
        masked = mask_sensitive_data(data)

        assert masked["user"]["name"] == "john"
        assert masked["user"]["api_token"] == "***"

    def test_masks_token_response_fields(self) -> None:
        """Test that every credential field of a token response is masked."""
        data = {
            "access_token": "a",
            "refresh_token": "r",
            "id_token": "i",
            "token_type": "Bearer",
            "expires_in": 300,
            "client_secret": "s",
            "code_verifier": "v",
        }
        masked = mask_sensitive_data(data)

        assert masked["access_token"] == "***"
        assert masked["refresh_token"] == "***"
        assert masked["id_token"] == "***"
        assert masked["client_secret"] == "***"
        assert masked["code_verifier"] == "***"
        assert masked["expires_in"] == 300
        assert data["access_token"] == "a"

    def test_custom_keys(self) -> None:
        """Test masking with an explicit key set."""
        masked = mask_sensitive_data({"assertion": "jwt", "grant_type": "x"}, {"grant"})

        assert masked == {"assertion": "jwt", "grant_type": "***"}
        assert "assertion" in DEFAULT_SENSITIVE_KEYS
