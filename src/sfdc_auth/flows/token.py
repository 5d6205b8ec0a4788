"""Operations on issued tokens: userinfo, introspection and revocation."""

from __future__ import annotations

__all__ = [
    "TokenIntrospector",
    "TokenRevoker",
    "UserInfoRequester",
    "token_introspector",
    "token_revoker",
    "userinfo_requester",
]

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from sfdc_auth.client.cache import ClientCache
from sfdc_auth.config import Environment, validate_environment
from sfdc_auth.exceptions import ProtocolError, SfdcAuthError
from sfdc_auth.models import (
    IntrospectionOptions,
    IntrospectionResponse,
    RevocationOptions,
    UserInfoOptions,
)

UserInfoRequester = Callable[..., Awaitable["dict[str, Any] | str"]]
TokenIntrospector = Callable[..., Awaitable[IntrospectionResponse]]
TokenRevoker = Callable[..., Awaitable[bool]]


def userinfo_requester(
    env: Environment | Mapping[str, Any] | None,
    cache: ClientCache,
) -> UserInfoRequester:
    """Create a function that fetches user information for an access token.

    Returns:
        async (token, opts=None) -> dict | str

    Raises:
        ConfigurationError: If env is invalid.
    """
    validated = validate_environment(env)

    async def request_user_info(token: str, opts: UserInfoOptions | None = None) -> dict[str, Any] | str:
        try:
            client = await cache.find_or_create(validated)
            return await client.userinfo(token, opts)
        except SfdcAuthError as e:
            raise ProtocolError(
                f"Failed to retrieve user information. Caused by: {e}",
                status_code=getattr(e, "status_code", None),
            ) from e

    return request_user_info


def token_introspector(
    env: Environment | Mapping[str, Any] | None,
    cache: ClientCache,
) -> TokenIntrospector:
    """Create a function that introspects tokens.

    Returns:
        async (token, opts=None) -> IntrospectionResponse

    Raises:
        ConfigurationError: If env is invalid.
    """
    validated = validate_environment(env)

    async def introspect_token(
        token: str,
        opts: IntrospectionOptions | None = None,
    ) -> IntrospectionResponse:
        client = await cache.find_or_create(validated)
        return await client.introspect(token, opts, env=validated)

    return introspect_token


def token_revoker(
    env: Environment | Mapping[str, Any] | None,
    cache: ClientCache,
) -> TokenRevoker:
    """Create a function that revokes tokens.

    Returns:
        async (token, opts=None) -> bool

    Raises:
        ConfigurationError: If env is invalid.
    """
    validated = validate_environment(env)

    async def revoke_token(token: str, opts: RevocationOptions | None = None) -> bool:
        client = await cache.find_or_create(validated)
        return await client.revoke(token, opts)

    return revoke_token
