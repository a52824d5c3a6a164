"""Configuration management for authgrant.

Provides configuration loading from environment variables, .env files,
and optional configuration files with proper precedence handling, plus
the layered option resolution used by every login/lookup call.
"""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator

from authgrant.exceptions import InvalidArgumentError, InvalidValueError
from authgrant.security import redact

logger = logging.getLogger(__name__)

ENV_PREFIX = "AUTHGRANT_"


class ConfigError(Exception):
    """Raised when configuration validation fails."""


class LogLevel(str, Enum):
    """Supported log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Environment(str, Enum):
    """Identity provider environments."""

    DEV = "dev"
    PREPROD = "preprod"
    PROD = "prod"


class TokenStoreType(str, Enum):
    """Token store backends."""

    AUTO = "auto"
    KEYRING = "keyring"
    FILE = "file"
    MEMORY = "memory"


@dataclass(frozen=True)
class EnvironmentDefaults:
    """Default identity provider addressing for an environment."""

    base_url: str
    realm: str


ENVIRONMENTS: dict[str, EnvironmentDefaults] = {
    Environment.DEV.value: EnvironmentDefaults(
        base_url="https://login-dev.authgrant.io", realm="broker"
    ),
    Environment.PREPROD.value: EnvironmentDefaults(
        base_url="https://login-preprod.authgrant.io", realm="broker"
    ),
    Environment.PROD.value: EnvironmentDefaults(
        base_url="https://login.authgrant.io", realm="broker"
    ),
}

DEFAULT_INTERACTIVE_LOGIN_TIMEOUT = 120_000  # milliseconds


def default_token_store_file() -> Path:
    """Return the default path of the file-based token store."""
    return Path.home() / ".authgrant" / "tokens.json"


class AuthConfig(BaseModel):
    """Main configuration model for authgrant.

    Configuration can be loaded from:
    - Environment variables with AUTHGRANT_ prefix
    - Optional .env file in the working directory
    - Optional configuration file passed via CLI
    """

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    env: Environment = Field(default=Environment.PROD, description="Provider environment")

    # Identity provider addressing
    base_url: str | None = Field(default=None, description="Identity provider base URL")
    realm: str | None = Field(default=None, description="Realm to authenticate with")
    client_id: str | None = Field(default=None, description="OAuth client identifier")

    # Grant credentials
    client_secret: SecretStr | None = Field(default=None, description="OAuth client secret")
    username: str | None = Field(default=None, description="Resource owner username")
    password: SecretStr | None = Field(default=None, description="Resource owner password")
    secret_file: str | None = Field(
        default=None, description="Path to the PEM private key used to sign JWT assertions"
    )
    service_account: bool = Field(
        default=False, description="Authenticate as a service instead of a user"
    )

    # Token lifecycle
    token_refresh_threshold: float = Field(
        default=0, ge=0, description="Seconds before expiry to refresh the access token"
    )
    interactive_login_timeout: int = Field(
        default=DEFAULT_INTERACTIVE_LOGIN_TIMEOUT,
        ge=1,
        description="Milliseconds to wait for the interactive login redirect",
    )
    http_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    discover: bool = Field(
        default=False, description="Refine endpoints from the OpenID configuration document"
    )

    # Token storage
    token_store_type: TokenStoreType | None = Field(
        default=TokenStoreType.AUTO, description="Token store backend (None disables)"
    )
    token_store_file: str | None = Field(
        default=None, description="Path of the file-based token store"
    )
    token_encryption_key: SecretStr | None = Field(
        default=None, description="Fernet encryption key for the file token store"
    )
    keyring_service_name: str = Field(
        default="authgrant", description="Service name used for keyring storage"
    )

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
    }

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("env", mode="before")
    @classmethod
    def normalize_environment(cls, v: Any) -> Any:
        """Normalize environment to lowercase."""
        if isinstance(v, str):
            return v.lower()
        return v

    @field_validator("token_store_type", mode="before")
    @classmethod
    def normalize_token_store_type(cls, v: Any) -> Any:
        """Normalize store type; "none" disables persistence."""
        if isinstance(v, str):
            v = v.lower()
            if v in ("", "none", "null"):
                return None
        return v

    @field_validator("base_url", mode="after")
    @classmethod
    def strip_base_url(cls, v: str | None) -> str | None:
        """Drop trailing slashes from the base URL."""
        if v:
            return v.rstrip("/")
        return v


# Fixed list of fields that can be overridden per call
OPTION_FIELDS = (
    "env",
    "base_url",
    "realm",
    "client_id",
    "client_secret",
    "username",
    "password",
    "secret_file",
    "service_account",
)


@dataclass(frozen=True)
class ResolvedOptions:
    """Fully resolved authenticator options for a single call."""

    env: str
    base_url: str
    realm: str
    client_id: str | None
    client_secret: str | None
    username: str | None
    password: str | None
    secret_file: str | None
    service_account: bool


def _secret_value(value: SecretStr | str | None) -> str | None:
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return value


def resolve_options(config: AuthConfig, **overrides: Any) -> ResolvedOptions:
    """Resolve per-call options against the instance configuration.

    Precedence (highest to lowest):
    1. Call-time overrides (``None`` and ``""`` mean "not given")
    2. Instance configuration
    3. Environment table defaults (base URL and realm only)

    Args:
        config: Instance configuration
        **overrides: Call-time values for any field in OPTION_FIELDS

    Returns:
        ResolvedOptions

    Raises:
        InvalidArgumentError: If an unknown option is supplied
        InvalidValueError: If the environment is unknown
    """
    unknown = sorted(set(overrides) - set(OPTION_FIELDS))
    if unknown:
        msg = f"Unsupported option(s): {', '.join(unknown)}"
        raise InvalidArgumentError(msg)

    def pick(name: str) -> Any:
        value = overrides.get(name)
        if value is None or value == "":
            value = getattr(config, name)
        return value

    env = pick("env")
    env = env.value if isinstance(env, Environment) else str(env).lower()
    defaults = ENVIRONMENTS.get(env)
    if defaults is None:
        msg = f"Invalid environment: {env}"
        raise InvalidValueError(msg)

    base_url = pick("base_url") or defaults.base_url
    return ResolvedOptions(
        env=env,
        base_url=str(base_url).rstrip("/"),
        realm=pick("realm") or defaults.realm,
        client_id=pick("client_id"),
        client_secret=_secret_value(pick("client_secret")),
        username=pick("username"),
        password=_secret_value(pick("password")),
        secret_file=pick("secret_file"),
        service_account=bool(pick("service_account")),
    )


def _get_env_value(key: str, prefix: str = ENV_PREFIX) -> str | None:
    """Get environment variable value with prefix."""
    return os.environ.get(f"{prefix}{key.upper()}")


_BOOL_FIELDS = ("service_account", "discover")
_NUMBER_FIELDS = ("token_refresh_threshold", "interactive_login_timeout", "http_timeout")


def _load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}
    for field_name in AuthConfig.model_fields:
        value: Any = _get_env_value(field_name)
        if value is None:
            continue
        if field_name in _BOOL_FIELDS:
            value = value.lower() in ("true", "1", "yes")
        elif field_name in _NUMBER_FIELDS:
            with contextlib.suppress(ValueError):
                value = float(value)
        config[field_name] = value

    return config


def _load_file_config(path: str | Path) -> dict[str, Any]:
    """Load configuration from a file (JSON or YAML)."""
    import json

    path = Path(path)
    if not path.exists():
        msg = f"Configuration file not found: {path}"
        raise ConfigError(msg)

    suffix = path.suffix.lower()
    content = path.read_text()

    if suffix == ".json":
        return dict(json.loads(content))

    if suffix in (".yaml", ".yml"):
        try:
            import yaml

            return dict(yaml.safe_load(content) or {})
        except ImportError:
            msg = "PyYAML is required to load YAML configuration files"
            raise ConfigError(msg) from None

    msg = f"Unsupported configuration file format: {suffix}"
    raise ConfigError(msg)


def _redact_for_log(key: str, value: Any) -> str:
    """Redact sensitive values for logging."""
    secret_keys = {"client_secret", "password", "token_encryption_key"}
    if key in secret_keys:
        return redact(str(value) if value else None)
    return str(value)


def load_config(
    path: str | Path | None = None,
    cli_args: dict[str, Any] | None = None,
) -> AuthConfig:
    """Load and validate configuration.

    Precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Configuration file
    4. Model defaults

    Args:
        path: Optional path to configuration file
        cli_args: Optional CLI argument overrides

    Returns:
        Validated AuthConfig instance

    Raises:
        ConfigError: If configuration is invalid
    """
    load_dotenv()

    config_dict: dict[str, Any] = {}
    if path:
        logger.debug("Loading configuration from file: %s", path)
        config_dict.update(_load_file_config(path))

    for key, value in _load_env_config().items():
        config_dict[key] = value
        logger.debug("Config %s from environment: %s", key, _redact_for_log(key, value))

    if cli_args:
        for key, value in cli_args.items():
            if value is not None:
                config_dict[key] = value
                logger.debug("Config %s from CLI: %s", key, _redact_for_log(key, value))

    try:
        return AuthConfig(**config_dict)
    except Exception as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e
