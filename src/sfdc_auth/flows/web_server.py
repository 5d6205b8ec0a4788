"""OAuth 2.0 web server flow.

    generate = authorization_url_generator(env, cache)
    url = await generate("state-123")             # redirect the browser here

    request_token = auth_code_token_grantor(env, cache)
    token = await request_token(code)              # on the callback

The Environment is validated when the factory is called, not on first use.
"""

from __future__ import annotations

__all__ = [
    "AuthCodeTokenGrantor",
    "AuthorizationUrlGenerator",
    "auth_code_token_grantor",
    "authorization_url_generator",
]

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from sfdc_auth.client.cache import ClientCache
from sfdc_auth.config import Environment, validate_environment
from sfdc_auth.models import AccessTokenResponse, AuthCodeGrant, AuthOptions, GrantOptions

AuthorizationUrlGenerator = Callable[..., Awaitable[str]]
AuthCodeTokenGrantor = Callable[..., Awaitable[AccessTokenResponse]]


def authorization_url_generator(
    env: Environment | Mapping[str, Any] | None,
    cache: ClientCache,
) -> AuthorizationUrlGenerator:
    """Create a function that builds authorization URLs.

    Args:
        env: Provider environment.
        cache: Client cache.

    Returns:
        async (state, opts=None) -> str

    Raises:
        ConfigurationError: If env is invalid.
    """
    validated = validate_environment(env)

    async def generate_authorization_url(state: str | None, opts: AuthOptions | None = None) -> str:
        client = await cache.find_or_create(validated)
        params = {"state": state} if state is not None else None
        return client.create_authorization_url(params, opts, env=validated)

    return generate_authorization_url


def auth_code_token_grantor(
    env: Environment | Mapping[str, Any] | None,
    cache: ClientCache,
) -> AuthCodeTokenGrantor:
    """Create a function that exchanges an authorization code for tokens.

    The client authenticates with a signed assertion by default; pass
    GrantOptions(use_jwt=False) to use the client secret instead.

    Returns:
        async (code, opts=None) -> AccessTokenResponse

    Raises:
        ConfigurationError: If env is invalid.
    """
    validated = validate_environment(env)

    async def request_access_token(code: str, opts: GrantOptions | None = None) -> AccessTokenResponse:
        client = await cache.find_or_create(validated)
        return await client.grant(AuthCodeGrant(code=code), opts, env=validated)

    return request_access_token
