"""OAuth 2.0 JWT bearer token flow.

Requests access tokens for a user with a signed grant assertion, without any
user interaction. The connected app must be pre-authorized for the user.
"""

from __future__ import annotations

__all__ = [
    "JwtBearerTokenGrantor",
    "UserCredentialsGrantor",
    "jwt_bearer_token_grantor",
    "user_credentials_grantor",
]

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from sfdc_auth.client.cache import ClientCache
from sfdc_auth.config import Environment, validate_environment
from sfdc_auth.exceptions import GrantError, SfdcAuthError
from sfdc_auth.models import AccessTokenResponse, Credentials, GrantOptions, JwtBearerGrant, User

JwtBearerTokenGrantor = Callable[..., Awaitable[AccessTokenResponse]]
UserCredentialsGrantor = Callable[[User], Awaitable[Credentials]]

# Credentials are requested on behalf of the application, not a browser
# session: there is no ID token to decode and no signature to check.
_CREDENTIALS_GRANT_OPTIONS = GrantOptions(decode_id_token=False, verify_signature=False)


def jwt_bearer_token_grantor(
    env: Environment | Mapping[str, Any] | None,
    cache: ClientCache,
) -> JwtBearerTokenGrantor:
    """Create a function that requests an access token for a user.

    Returns:
        async (user, opts=None) -> AccessTokenResponse

    Raises:
        ConfigurationError: If env is invalid.
    """
    validated = validate_environment(env)

    async def request_access_token(user: User, opts: GrantOptions | None = None) -> AccessTokenResponse:
        try:
            client = await cache.find_or_create(validated)
            return await client.grant(JwtBearerGrant(user=user), opts, env=validated)
        except SfdcAuthError as e:
            username = user.username if user is not None else None
            raise GrantError(f"Invalid grant for user ({username}). Caused by: {e}") from e

    return request_access_token


def user_credentials_grantor(
    env: Environment | Mapping[str, Any] | None,
    cache: ClientCache,
) -> UserCredentialsGrantor:
    """Create a function that obtains credentials for a user.

    Returns:
        async (user) -> Credentials

    Raises:
        ConfigurationError: If env is invalid.
    """
    request_access_token = jwt_bearer_token_grantor(env, cache)

    async def get_token(user: User) -> Credentials:
        _validate_user(user)
        try:
            response = await request_access_token(user, _CREDENTIALS_GRANT_OPTIONS)
        except GrantError as e:
            raise GrantError(
                f"Failed to obtain grant for user ({user.username}). Caused by: {e.__cause__ or e}"
            ) from e

        return Credentials(
            access_token=response.access_token,
            instance_url=response.instance_url,
            user_info=response.user_info,
        )

    return get_token


def _validate_user(user: User | None) -> None:
    if user is None:
        raise GrantError("Missing required object parameter: user")
    if user.username is None:
        raise GrantError("Missing required string parameter: user[username]")
    if not user.username:
        raise GrantError("Invalid parameter: user[username] cannot be empty")
