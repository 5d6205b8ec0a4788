"""sfdc-auth: OAuth 2.0 / OpenID Connect client engine for Salesforce identity servers.

Obtains, validates, introspects and revokes access tokens and verifies the
identity claims returned by the provider.

Example usage:
    from sfdc_auth import ClientCache, Environment
    from sfdc_auth.flows import auth_code_token_grantor

    cache = ClientCache()
    request_token = auth_code_token_grantor(env, cache)
    token = await request_token(code)
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = [
    "AccessTokenResponse",
    "AuthCodeGrant",
    "AuthOptions",
    "ClientCache",
    "Credentials",
    "Environment",
    "GrantOptions",
    "IntrospectionOptions",
    "IntrospectionResponse",
    "JwtBearerGrant",
    "ProtocolClient",
    "ProviderConfig",
    "RefreshGrant",
    "RevocationOptions",
    "User",
    "UserInfo",
    "UserInfoOptions",
    "__version__",
]

from sfdc_auth.client.cache import ClientCache
from sfdc_auth.client.protocol import ProtocolClient
from sfdc_auth.config import Environment, ProviderConfig
from sfdc_auth.models import (
    AccessTokenResponse,
    AuthCodeGrant,
    AuthOptions,
    Credentials,
    GrantOptions,
    IntrospectionOptions,
    IntrospectionResponse,
    JwtBearerGrant,
    RefreshGrant,
    RevocationOptions,
    User,
    UserInfo,
    UserInfoOptions,
)
