"""Pipeline stages.

Each factory binds a provider and returns a handler
``async (request, context=None) -> AuthContext``. A handler either returns a
new context or denies the request through fail(), which raises
AccessDeniedError. Handlers never mutate the context they receive.

Stages:
    auth_callback        exchange the callback code, record the Authorization value
    token_validator      validate a bearer token via userinfo, set the user
    token_introspection  introspect a bearer token, set token information
    grant_checker        check a JWT-bearer grant can be obtained for the user
    identity             fetch the identity document from the validated Identity URL

Usage:
    server = ServerConfig(providers={"salesforce": ProviderConfig(environment=env)})
    pipeline = AuthPipeline([token_validator(server), grant_checker(server)])
"""

from __future__ import annotations

__all__ = [
    "auth_callback",
    "grant_checker",
    "identity",
    "token_introspection",
    "token_validator",
]

import httpx
from fastapi import Request

from sfdc_auth.client.identity import is_salesforce_response
from sfdc_auth.constants import DEFAULT_PROVIDER
from sfdc_auth.exceptions import SfdcAuthError
from sfdc_auth.flows.jwt_bearer import jwt_bearer_token_grantor
from sfdc_auth.flows.token import token_introspector, userinfo_requester
from sfdc_auth.flows.web_server import auth_code_token_grantor
from sfdc_auth.models import (
    AccessTokenResponse,
    GrantOptions,
    IntrospectionOptions,
    User,
    UserInfoOptions,
)
from sfdc_auth.pipeline.common import (
    StageHandler,
    client_ip,
    extract_access_token,
    fail,
    resolve_authorization,
)
from sfdc_auth.pipeline.context import AuthContext
from sfdc_auth.pipeline.server import ServerConfig
from sfdc_auth.telemetry.events import AuthEvent

# Errors a stage turns into an access denial; anything else is a bug and propagates
_DENIABLE_ERRORS: tuple[type[Exception], ...] = (SfdcAuthError, httpx.HTTPError)


# =============================================================================
# Authorization code callback
# =============================================================================


def auth_callback(
    server_config: ServerConfig,
    provider: str = DEFAULT_PROVIDER,
    opts: GrantOptions | None = None,
) -> StageHandler:
    """Create the authorization-code callback stage.

    Args:
        server_config: Shared server configuration.
        provider: Provider name.
        opts: Grant options (default: the provider's grant_options).

    Returns:
        Stage handler.

    Raises:
        ConfigurationError: If the provider is unknown or its environment invalid.
    """
    provider_config = server_config.provider(provider)
    grant_options = opts or provider_config.grant_options
    request_access_token = auth_code_token_grantor(provider_config.environment, server_config.cache)

    async def exchange_code(request: Request, context: AuthContext | None = None) -> AuthContext:
        context = context or AuthContext()
        try:
            code = _validate_callback(request)
            token = await request_access_token(code, grant_options)
        except _DENIABLE_ERRORS as e:
            fail(server_config, e, request)

        authorization = f"{token.token_type} {token.access_token}"
        user_info = context.user_info
        if is_salesforce_response(token) and token.user_info is not None:
            user_info = token.user_info
        result = context.merge(authorization=authorization, user_info=user_info)
        if provider_config.set_token_on_context:
            result = result.merge(access_token=token.access_token)

        server_config.events.emit(
            AuthEvent.AUTHORIZATION_HEADER_SET,
            f"Authorization headers set for user ({_describe_user(token)}) [{client_ip(request)}].",
        )
        return result

    return exchange_code


def _validate_callback(request: Request) -> str:
    error = request.query_params.get("error")
    if error:
        raise SfdcAuthError(error)

    code = request.query_params.get("code")
    if not code:
        raise SfdcAuthError("Missing required string parameter: query[code]")
    return code


def _describe_user(token: AccessTokenResponse) -> str:
    """Name the user by ID token email, else by Salesforce user id."""
    claims = token.id_token_claims or {}
    if isinstance(claims.get("email"), str):
        return claims["email"]
    if is_salesforce_response(token) and token.user_info is not None and token.user_info.id:
        return token.user_info.id
    return "unknown"


# =============================================================================
# Bearer token validation
# =============================================================================


def token_validator(
    server_config: ServerConfig,
    provider: str = DEFAULT_PROVIDER,
    opts: UserInfoOptions | None = None,
) -> StageHandler:
    """Create the stage validating a bearer token against the userinfo endpoint.

    On success the context user is set from preferred_username and
    organization_id.
    """
    provider_config = server_config.provider(provider)
    userinfo_options = opts or provider_config.userinfo_options
    request_user_info = userinfo_requester(provider_config.environment, server_config.cache)

    async def validate_token(request: Request, context: AuthContext | None = None) -> AuthContext:
        context = context or AuthContext()
        try:
            access_token = extract_access_token(resolve_authorization(request, context))
            user_info = await request_user_info(access_token, userinfo_options)
            user = _user_from_userinfo(user_info)
        except _DENIABLE_ERRORS as e:
            fail(server_config, e, request)

        server_config.events.emit(
            AuthEvent.TOKEN_VALIDATED,
            f"Token validated for {user.username} ({client_ip(request)}).",
        )
        return context.merge(user=user)

    return validate_token


def _user_from_userinfo(user_info: object) -> User:
    if not isinstance(user_info, dict):
        raise SfdcAuthError("User information must be a JSON object")

    username = user_info.get("preferred_username")
    if not isinstance(username, str) or not username:
        raise SfdcAuthError("Missing required string parameter: preferred_username")
    return User(username=username, organization_id=user_info.get("organization_id"))


# =============================================================================
# Token introspection
# =============================================================================


def token_introspection(
    server_config: ServerConfig,
    provider: str = DEFAULT_PROVIDER,
    opts: IntrospectionOptions | None = None,
) -> StageHandler:
    """Create the stage introspecting a bearer token.

    Inactive tokens are denied. When the response names a user, the context
    user is replaced.
    """
    provider_config = server_config.provider(provider)
    introspection_options = opts or provider_config.introspection_options
    introspect = token_introspector(provider_config.environment, server_config.cache)

    async def introspect_token(request: Request, context: AuthContext | None = None) -> AuthContext:
        context = context or AuthContext()
        try:
            access_token = extract_access_token(resolve_authorization(request, context))
            token_information = await introspect(access_token, introspection_options)
            if not token_information.active:
                raise SfdcAuthError("Token is not active")
        except _DENIABLE_ERRORS as e:
            fail(server_config, e, request)

        result = context.merge(token_information=token_information)
        if token_information.username:
            result = result.merge(user=User(username=token_information.username))

        server_config.events.emit(
            AuthEvent.TOKEN_INTROSPECTED,
            f"Token introspected for user ({token_information.username or 'unknown'}) "
            f"[{client_ip(request)}].",
        )
        return result

    return introspect_token


# =============================================================================
# Grant checker
# =============================================================================


def grant_checker(
    server_config: ServerConfig,
    provider: str = DEFAULT_PROVIDER,
    opts: GrantOptions | None = None,
) -> StageHandler:
    """Create the stage checking that a JWT-bearer grant succeeds for the context user.

    Must run after a stage that sets the user. Signature verification is
    disabled by default since JWT-bearer responses are not signed.
    """
    provider_config = server_config.provider(provider)
    grant_options = opts or GrantOptions(verify_signature=False)
    request_access_token = jwt_bearer_token_grantor(provider_config.environment, server_config.cache)

    async def check_user_grant(request: Request, context: AuthContext | None = None) -> AuthContext:
        context = context or AuthContext()
        try:
            user = _require_user(context)
            await request_access_token(user, grant_options)
        except _DENIABLE_ERRORS as e:
            fail(server_config, e, request)

        server_config.events.emit(
            AuthEvent.GRANT_CHECKED,
            f"Grant checked for {user.username} ({client_ip(request)}).",
        )
        return context.merge(grant_checked=True)

    return check_user_grant


def _require_user(context: AuthContext) -> User:
    user = context.user
    if user is None:
        raise SfdcAuthError("Missing required object parameter: user")
    if user.username is None:
        raise SfdcAuthError("Missing required string parameter: user[username]")
    if not user.username:
        raise SfdcAuthError("Invalid parameter: user[username] cannot be empty")
    return user


# =============================================================================
# Identity
# =============================================================================


def identity(
    server_config: ServerConfig,
    provider: str = DEFAULT_PROVIDER,
) -> StageHandler:
    """Create the stage fetching the identity document of the validated Identity URL.

    Must run after auth_callback with signature verification enabled.
    """
    provider_config = server_config.provider(provider)

    async def retrieve_identity(request: Request, context: AuthContext | None = None) -> AuthContext:
        context = context or AuthContext()
        try:
            access_token = extract_access_token(resolve_authorization(request, context))
            url = _require_validated_identity_url(context)
            client = await server_config.cache.find_or_create(provider_config.environment)
            claims = await client.identity(url, access_token)
        except _DENIABLE_ERRORS as e:
            fail(server_config, e, request)

        server_config.events.emit(
            AuthEvent.IDENTITY_RETRIEVED,
            f"Identity information retrieved for user ({claims.get('username')}) "
            f"[{client_ip(request)}].",
        )
        return context.merge(identity=claims)

    return retrieve_identity


def _require_validated_identity_url(context: AuthContext) -> str:
    user_info = context.user_info
    if user_info is None:
        raise SfdcAuthError("Missing required object parameter: user_info.")
    if not user_info.url:
        raise SfdcAuthError("Missing required string parameter: user_info[url].")
    if not user_info.validated:
        raise SfdcAuthError("The Identity URL must be validated.")
    return user_info.url
