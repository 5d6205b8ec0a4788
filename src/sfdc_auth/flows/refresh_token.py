"""OAuth 2.0 refresh token flow.

Renews tokens issued by the web server flow without user interaction.
"""

from __future__ import annotations

__all__ = [
    "RefreshTokenGrantor",
    "refresh_token_grantor",
]

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from sfdc_auth.client.cache import ClientCache
from sfdc_auth.config import Environment, validate_environment
from sfdc_auth.models import AccessTokenResponse, GrantOptions, RefreshGrant

RefreshTokenGrantor = Callable[..., Awaitable[AccessTokenResponse]]


def refresh_token_grantor(
    env: Environment | Mapping[str, Any] | None,
    cache: ClientCache,
) -> RefreshTokenGrantor:
    """Create a function that exchanges a refresh token for a new access token.

    Salesforce does not rotate refresh tokens, so the returned response
    carries the supplied refresh token when the provider omits one.

    Returns:
        async (refresh_token, opts=None) -> AccessTokenResponse

    Raises:
        ConfigurationError: If env is invalid.
    """
    validated = validate_environment(env)

    async def request_access_token(
        refresh_token: str,
        opts: GrantOptions | None = None,
    ) -> AccessTokenResponse:
        client = await cache.find_or_create(validated)
        response = await client.grant(RefreshGrant(refresh_token=refresh_token), opts, env=validated)
        if response.refresh_token is None:
            response = response.model_copy(update={"refresh_token": refresh_token})
        return response

    return request_access_token
