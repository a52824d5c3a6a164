"""Authentication exceptions.

Every error raised by authgrant carries a stable ``code`` so callers can
branch on the failure kind without parsing messages.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base exception for authentication errors.

    Attributes:
        message: Human-readable error message
        code: Stable error code (e.g. "AUTH_FAILED")
    """

    code = "AUTH_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message


class InvalidArgumentError(AuthError, TypeError):
    """Raised when a caller passes a malformed argument."""

    code = "INVALID_ARGUMENT"


class InvalidParameterError(AuthError, TypeError):
    """Raised when a parameter has the wrong type (e.g. a custom token store)."""

    code = "INVALID_PARAMETER"


class InvalidValueError(AuthError, ValueError):
    """Raised when a value is out of range or unknown."""

    code = "INVALID_VALUE"


class AuthFailedError(AuthError):
    """Raised when the identity provider rejects a grant.

    Attributes:
        status_code: HTTP status code returned by the provider
        response_body: Raw response body (if available)
    """

    code = "AUTH_FAILED"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: dict | str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class AuthInvalidServerResponseError(AuthError):
    """Raised when a 2xx response is missing required fields."""

    code = "AUTH_INVALID_SERVER_RESPONSE"

    def __init__(self, message: str = "Authentication failed: Invalid server response") -> None:
        super().__init__(message)


class AuthServerError(AuthError):
    """Raised when the provider returns a malformed response."""

    code = "AUTH_SERVER_ERROR"


class AuthTimeoutError(AuthError):
    """Raised when an interactive login does not complete in time.

    Attributes:
        timeout: The timeout that elapsed, in milliseconds
    """

    code = "AUTH_TIMEOUT"

    def __init__(
        self,
        message: str = "Authentication failed: Timed out",
        timeout: float | None = None,
    ) -> None:
        super().__init__(message)
        self.timeout = timeout


class AuthNetworkError(AuthError):
    """Raised when the provider cannot be reached.

    Attributes:
        transport_code: Transport-level error code (e.g. "ECONNREFUSED")
    """

    code = "AUTH_NETWORK_ERROR"

    def __init__(self, message: str, transport_code: str | None = None) -> None:
        super().__init__(message)
        self.transport_code = transport_code


class AuthInvalidTokenError(AuthError):
    """Raised when no usable token exists and there is no refresh path."""

    code = "AUTH_INVALID_TOKEN"


class AuthCancelledError(AuthError):
    """Raised when a pending interactive login is cancelled."""

    code = "AUTH_CANCELLED"

    def __init__(self, message: str = "Authentication cancelled") -> None:
        super().__init__(message)


class AuthSigningError(AuthError):
    """Raised when a JWT assertion cannot be signed."""

    code = "AUTH_SIGNING_ERROR"


class TokenStoreError(AuthError):
    """Raised when a token store cannot be read, written or initialized."""

    code = "TOKEN_STORE_ERROR"
