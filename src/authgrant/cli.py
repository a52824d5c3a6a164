"""Command-line interface for authgrant.

Provides commands to log in, list and revoke stored credentials, and
inspect the identity provider configuration. Output is JSON.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer

from authgrant import __version__
from authgrant.auth import Auth
from authgrant.config import AuthConfig, ConfigError, load_config
from authgrant.exceptions import AuthError
from authgrant.logging_config import get_logger, setup_logging
from authgrant.models import CredentialRecord
from authgrant.oauth.interactive import ManualLogin

T = TypeVar("T")

app = typer.Typer(
    name="authgrant",
    help="authgrant - OAuth 2.0 / OpenID Connect credential manager",
    add_completion=False,
)

ConfigOption = typer.Option(None, "--config", "-c", help="Path to configuration file (JSON or YAML)")
LogLevelOption = typer.Option(None, "--log-level", "-l", help="Log level override")
EnvOption = typer.Option(None, "--env", "-e", help="Environment (dev, preprod, prod)")
BaseUrlOption = typer.Option(None, "--base-url", help="Identity provider base URL")
RealmOption = typer.Option(None, "--realm", help="Realm name")
ClientIdOption = typer.Option(None, "--client-id", help="OAuth client identifier")
StoreTypeOption = typer.Option(
    None, "--token-store-type", help="Token store (auto, keyring, file, memory)"
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"authgrant version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """authgrant CLI."""


def _load(config_path: str | None, **cli_args: Any) -> AuthConfig:
    config = load_config(path=config_path, cli_args=cli_args)
    setup_logging(config)
    return config


def _record_summary(record: CredentialRecord) -> dict[str, Any]:
    return {
        "name": record.name,
        "email": record.email,
        "authenticator": record.authenticator,
        "base_url": record.base_url,
        "realm": record.realm,
        "client_id": record.client_id,
        "env": record.env,
        "expires": record.expires.model_dump(mode="json"),
    }


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2))


def _run(config: AuthConfig, action: Callable[[Auth], Awaitable[T]]) -> T:
    async def runner() -> T:
        async with Auth(config) as auth:
            return await action(auth)

    return asyncio.run(runner())


def _execute(command: Callable[[], None]) -> None:
    try:
        command()
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=1) from None
    except AuthError as e:
        typer.echo(f"Error: {e} ({e.code})", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        get_logger(__name__).info("Interrupted")
        raise typer.Exit(code=130) from None


@app.command()
def login(
    config_path: str | None = ConfigOption,
    log_level: str | None = LogLevelOption,
    env: str | None = EnvOption,
    base_url: str | None = BaseUrlOption,
    realm: str | None = RealmOption,
    client_id: str | None = ClientIdOption,
    client_secret: str | None = typer.Option(None, "--client-secret", help="Client secret"),
    username: str | None = typer.Option(None, "--username", "-u", help="Username"),
    password: str | None = typer.Option(None, "--password", "-p", help="Password"),
    secret_file: str | None = typer.Option(
        None, "--secret-file", help="PEM private key for signed JWT assertions"
    ),
    service_account: bool = typer.Option(
        False, "--service-account", help="Authenticate as a service"
    ),
    token_store_type: str | None = StoreTypeOption,
    manual: bool = typer.Option(
        False, "--manual", help="Print the login URL instead of opening a browser"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Ignore stored credentials"),
    timeout: int | None = typer.Option(
        None, "--timeout", help="Milliseconds to wait for the browser login"
    ),
) -> None:
    """Log in and store the resulting credential."""

    def command() -> None:
        config = _load(
            config_path,
            log_level=log_level,
            env=env,
            base_url=base_url,
            realm=realm,
            client_id=client_id,
            client_secret=client_secret,
            username=username,
            password=password,
            secret_file=secret_file,
            service_account=service_account or None,
            token_store_type=token_store_type,
        )

        async def action(auth: Auth) -> dict[str, Any]:
            result = await auth.login(force=force, manual=manual, timeout=timeout)
            if isinstance(result, ManualLogin):
                typer.echo(f"Open this URL in a browser to log in:\n\n  {result.url}\n", err=True)
                result = await result.wait()
            return {
                "account": result.account,
                "email": result.email,
                "authenticator": result.authenticator,
                "expires": result.record.expires.model_dump(mode="json"),
            }

        _echo_json(_run(config, action))

    _execute(command)


@app.command("list")
def list_accounts(
    config_path: str | None = ConfigOption,
    log_level: str | None = LogLevelOption,
    token_store_type: str | None = StoreTypeOption,
) -> None:
    """List stored credentials that are still valid."""

    def command() -> None:
        config = _load(config_path, log_level=log_level, token_store_type=token_store_type)
        records = _run(config, lambda auth: auth.list())
        _echo_json([_record_summary(r) for r in records])

    _execute(command)


@app.command()
def revoke(
    accounts: list[str] | None = typer.Argument(None, help="Account names or hashes to revoke"),
    all_accounts: bool = typer.Option(False, "--all", "-a", help="Revoke all accounts"),
    base_url: str | None = typer.Option(None, "--base-url", help="Only revoke for this base URL"),
    config_path: str | None = ConfigOption,
    log_level: str | None = LogLevelOption,
    token_store_type: str | None = StoreTypeOption,
) -> None:
    """Revoke stored credentials and log them out at the provider."""

    def command() -> None:
        config = _load(config_path, log_level=log_level, token_store_type=token_store_type)
        revoked = _run(
            config,
            lambda auth: auth.revoke(accounts=accounts, all_accounts=all_accounts, base_url=base_url),
        )
        _echo_json([_record_summary(r) for r in revoked])

    _execute(command)


@app.command("server-info")
def server_info(
    url: str | None = typer.Option(None, "--url", help="OpenID configuration URL"),
    config_path: str | None = ConfigOption,
    log_level: str | None = LogLevelOption,
    env: str | None = EnvOption,
    base_url: str | None = BaseUrlOption,
    realm: str | None = RealmOption,
) -> None:
    """Show the identity provider's OpenID configuration."""

    def command() -> None:
        config = _load(config_path, log_level=log_level, env=env, base_url=base_url, realm=realm)
        _echo_json(_run(config, lambda auth: auth.server_info(url=url)))

    _execute(command)


@app.command()
def version() -> None:
    """Print version information."""
    typer.echo(f"authgrant version {__version__}")
    typer.echo(f"Python {sys.version}")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
