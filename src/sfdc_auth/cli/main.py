"""Main CLI entry point for sfdc-auth.

Provider settings are read from OPENID_* environment variables
(OPENID_ISSUER_URI, OPENID_CLIENT_ID, OPENID_CLIENT_SECRET,
OPENID_JWT_SIGNING_KEY, OPENID_HTTP_TIMEOUT, OPENID_REDIRECT_URI) or, with
--config, from a JSON file. With --log-file, warnings and errors are also
written as JSON lines to that file.

Commands:
    discover       - Show the endpoints published by the provider
    authorize-url  - Print an authorization URL for the web server flow
    revoke         - Revoke an access or refresh token
    check-grant    - Check that a JWT-bearer grant succeeds for a user

Subcommand help:
    sfdc-auth COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli", "main"]

import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
import httpx

from sfdc_auth import __version__
from sfdc_auth.client.cache import ClientCache
from sfdc_auth.config import Environment, load_environment_from_env, load_environment_from_file
from sfdc_auth.constants import ENV_PREFIX
from sfdc_auth.exceptions import SfdcAuthError
from sfdc_auth.flows import (
    authorization_url_generator,
    jwt_bearer_token_grantor,
    token_revoker,
)
from sfdc_auth.models import AuthOptions, GrantOptions, RevocationOptions, User
from sfdc_auth.telemetry.system_logger import configure_system_logger_file

from .styling import style_error, style_label, style_success

T = TypeVar("T")


def _load_environment(config_path: Path | None) -> Environment:
    if config_path is not None:
        return load_environment_from_file(config_path)
    return load_environment_from_env(ENV_PREFIX)


def _run(operation: Callable[[ClientCache], Awaitable[T]]) -> T:
    """Run an async operation with a fresh cache, mapping failures to ClickException."""

    async def runner() -> T:
        cache = ClientCache()
        try:
            return await operation(cache)
        finally:
            await cache.aclose()

    try:
        return asyncio.run(runner())
    except SfdcAuthError as e:
        raise click.ClickException(str(e)) from e
    except httpx.HTTPError as e:
        raise click.ClickException(f"HTTP error: {e}") from e


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with provider settings (default: OPENID_* environment variables)",
)
@click.option(
    "--log-file",
    "log_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write warnings and errors to this JSONL file",
)
@click.pass_context
def cli(ctx: click.Context, version: bool, config_path: Path | None, log_path: Path | None) -> None:
    """sfdc-auth: OAuth 2.0 / OpenID Connect client for Salesforce."""
    if version:
        click.echo(f"sfdc-auth {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    if log_path is not None:
        configure_system_logger_file(log_path)

    try:
        ctx.obj = _load_environment(config_path)
    except SfdcAuthError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.pass_obj
def discover(env: Environment) -> None:
    """Show the endpoints published by the provider."""

    async def operation(cache: ClientCache) -> dict[str, Any]:
        client = await cache.find_or_create(env)
        endpoints = client.endpoints
        return {
            "Authorization endpoint": endpoints.authorization_endpoint,
            "Token endpoint": endpoints.token_endpoint,
            "Revocation endpoint": endpoints.revocation_endpoint,
            "Userinfo endpoint": endpoints.userinfo_endpoint,
            "Introspection endpoint": endpoints.introspection_endpoint or "(not supported)",
        }

    for label, value in _run(operation).items():
        click.echo(f"{style_label(label)} {value}")


@cli.command("authorize-url")
@click.option("--state", default=None, help="Opaque value echoed back to the callback")
@click.option("--scope", default=None, help="Space-delimited scopes to request")
@click.option(
    "--prompt",
    type=click.Choice(["none", "login", "consent", "select_account"]),
    default=None,
    help="Reauthentication / reapproval behaviour",
)
@click.pass_obj
def authorize_url(env: Environment, state: str | None, scope: str | None, prompt: str | None) -> None:
    """Print an authorization URL for the web server flow."""
    opts = AuthOptions(scope=scope, prompt=prompt)

    async def operation(cache: ClientCache) -> str:
        generate = authorization_url_generator(env, cache)
        return await generate(state, opts)

    click.echo(_run(operation))


@cli.command()
@click.argument("token")
@click.option("--use-get", is_flag=True, help="Send the token as a GET query parameter")
@click.pass_obj
def revoke(env: Environment, token: str, use_get: bool) -> None:
    """Revoke an access or refresh token."""

    async def operation(cache: ClientCache) -> bool:
        revoke_token = token_revoker(env, cache)
        return await revoke_token(token, RevocationOptions(use_get=use_get))

    if not _run(operation):
        raise click.ClickException("Token revocation failed")
    click.echo(style_success("Token revoked"))


@cli.command("check-grant")
@click.argument("username")
@click.pass_obj
def check_grant(env: Environment, username: str) -> None:
    """Check that a JWT-bearer grant succeeds for USERNAME."""

    async def operation(cache: ClientCache) -> str | None:
        request_access_token = jwt_bearer_token_grantor(env, cache)
        response = await request_access_token(
            User(username=username),
            GrantOptions(verify_signature=False),
        )
        return response.instance_url

    try:
        instance_url = _run(operation)
    except click.ClickException as e:
        click.echo(style_error(e.message), err=True)
        sys.exit(1)

    click.echo(style_success(f"Grant obtained for {username}"))
    if instance_url:
        click.echo(f"{style_label('Instance URL')} {instance_url}")


def main() -> None:
    """CLI entry point."""
    cli()
