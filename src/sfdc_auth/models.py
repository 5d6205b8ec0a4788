"""Wire and request models for the protocol client.

Responses from the provider are frozen pydantic models: verification steps
return updated copies rather than mutating them. Grant requests are a closed
set of frozen dataclasses, one per grant type, so that a request can only
carry the fields its grant type uses.

Grant requests:
    AuthCodeGrant   - authorization_code (code, optional redirect_uri)
    RefreshGrant    - refresh_token (refresh_token)
    JwtBearerGrant  - urn:ietf:params:oauth:grant-type:jwt-bearer (user)
"""

from __future__ import annotations

__all__ = [
    "AccessTokenResponse",
    "AuthCodeGrant",
    "AuthOptions",
    "Credentials",
    "GrantOptions",
    "GrantRequest",
    "IntrospectionOptions",
    "IntrospectionResponse",
    "JwtBearerGrant",
    "RefreshGrant",
    "RevocationOptions",
    "User",
    "UserInfo",
    "UserInfoOptions",
]

from dataclasses import dataclass
from typing import Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sfdc_auth.constants import (
    GRANT_TYPE_AUTHORIZATION_CODE,
    GRANT_TYPE_JWT_BEARER,
    GRANT_TYPE_REFRESH_TOKEN,
    RESPONSE_FORMAT_JSON,
)


# =============================================================================
# Identity
# =============================================================================


@dataclass(frozen=True)
class User:
    """A provider user.

    Attributes:
        username: Provider username (e.g. "someone@example.com").
        organization_id: Org ID, when known.
    """

    username: str
    organization_id: str | None = None


class UserInfo(BaseModel):
    """User information derived from the Identity URL.

    Attributes:
        url: The Identity URL.
        validated: True only once the response signature has been verified.
        id: User ID (last Identity URL path segment).
        organization_id: Org ID (second-to-last Identity URL path segment).
    """

    model_config = ConfigDict(frozen=True)

    url: str | None = None
    validated: bool = False
    id: str | None = None
    organization_id: str | None = None


# =============================================================================
# Responses
# =============================================================================


class AccessTokenResponse(BaseModel):
    """Token endpoint response (RFC 6749 section 5.1 plus provider fields).

    Unknown provider fields (sfdc_community_url, ...) are preserved.

    Attributes:
        access_token: Issued access token.
        token_type: Token type, normally "Bearer".
        refresh_token: Refresh token, if granted.
        scope: Space-delimited granted scopes.
        id_token: Raw ID token, if the openid scope was granted.
        id_token_claims: Decoded (unverified) ID token claims.
        id: Identity URL (".../id/{organizationId}/{userId}").
        issued_at: Issue time in epoch milliseconds, as sent by the provider.
        signature: Base64 HMAC-SHA256 of id + issued_at keyed with the client secret.
        instance_url: URL of the user's instance.
        user_info: Derived user information.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    access_token: str
    token_type: str
    refresh_token: str | None = None
    scope: str | None = None
    id_token: str | None = None
    id_token_claims: dict[str, Any] | None = None
    id: str | None = None
    issued_at: str | None = None
    signature: str | None = None
    instance_url: str | None = None
    user_info: UserInfo | None = None

    @field_validator("issued_at", mode="before")
    @classmethod
    def _issued_at_as_string(cls, value: Any) -> Any:
        # The signature covers the literal digits, so keep them as text
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def scopes(self) -> frozenset[str]:
        """Granted scopes as a set."""
        return frozenset(self.scope.split()) if self.scope else frozenset()


class IntrospectionResponse(BaseModel):
    """Token introspection response (RFC 7662 section 2.2).

    Salesforce sets `sub` to the Identity URL of the token owner.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    active: bool
    scope: str | None = None
    client_id: str | None = None
    username: str | None = None
    token_type: str | None = None
    exp: int | None = None
    iat: int | None = None
    nbf: int | None = None
    sub: str | None = None
    aud: str | list[str] | None = None
    iss: str | None = None
    jti: str | None = None
    user_info: UserInfo | None = None


@dataclass(frozen=True)
class Credentials:
    """Credentials obtained for a user through the JWT-bearer grant.

    Attributes:
        access_token: Issued access token.
        instance_url: URL of the user's instance.
        user_info: Derived user information, if parsed.
    """

    access_token: str
    instance_url: str | None
    user_info: UserInfo | None


# =============================================================================
# Grant requests
# =============================================================================


@dataclass(frozen=True)
class AuthCodeGrant:
    """Exchange an authorization code for tokens."""

    grant_type: ClassVar[str] = GRANT_TYPE_AUTHORIZATION_CODE

    code: str
    redirect_uri: str | None = None


@dataclass(frozen=True)
class RefreshGrant:
    """Exchange a refresh token for a new access token."""

    grant_type: ClassVar[str] = GRANT_TYPE_REFRESH_TOKEN

    refresh_token: str


@dataclass(frozen=True)
class JwtBearerGrant:
    """Obtain a token for a user with a signed grant assertion."""

    grant_type: ClassVar[str] = GRANT_TYPE_JWT_BEARER

    user: User


GrantRequest = Union[AuthCodeGrant, RefreshGrant, JwtBearerGrant]


# =============================================================================
# Options
# =============================================================================


class GrantOptions(BaseModel):
    """Options for ProtocolClient.grant().

    Attributes:
        decode_id_token: Decode the id_token into id_token_claims.
        verify_signature: Verify the HMAC signature over id + issued_at.
        parse_user_info: Parse org and user IDs out of the Identity URL.
        use_jwt: Authenticate the client with a signed assertion instead of
            the client secret (authorization_code and refresh_token only).
        response_format: Accept header sent to the token endpoint.
    """

    model_config = ConfigDict(frozen=True)

    decode_id_token: bool = True
    verify_signature: bool = True
    parse_user_info: bool = True
    use_jwt: bool = True
    response_format: str = RESPONSE_FORMAT_JSON


class AuthOptions(BaseModel):
    """Optional authorization URL parameters.

    Attributes:
        display: Login page display type.
        immediate: Skip the approval step when the user already approved the client.
        prompt: Reauthentication / reapproval behaviour.
        state: Opaque value echoed back to the callback.
        scope: Space-delimited scopes to request.
    """

    model_config = ConfigDict(frozen=True)

    display: Literal["page", "popup", "touch", "mobile"] | None = None
    immediate: bool | None = None
    prompt: Literal["none", "login", "consent", "select_account"] | None = None
    state: str | None = None
    scope: str | None = None

    def to_params(self) -> dict[str, str]:
        """Return the set options as query parameters."""
        params: dict[str, str] = {}
        for name, value in self.model_dump(exclude_none=True).items():
            params[name] = str(value).lower() if isinstance(value, bool) else value
        return params


class RevocationOptions(BaseModel):
    """Options for ProtocolClient.revoke().

    Attributes:
        use_get: Send the token as a GET query parameter instead of a POST body.
    """

    model_config = ConfigDict(frozen=True)

    use_get: bool = False


class UserInfoOptions(BaseModel):
    """Options for ProtocolClient.userinfo()."""

    model_config = ConfigDict(frozen=True)

    response_format: str = RESPONSE_FORMAT_JSON


class IntrospectionOptions(BaseModel):
    """Options for ProtocolClient.introspect().

    Attributes:
        response_format: Accept header sent to the introspection endpoint.
        parse_user_info: Parse the Identity URL carried in `sub`.
        token_type_hint: "access_token" or "refresh_token".
    """

    model_config = ConfigDict(frozen=True)

    response_format: str = RESPONSE_FORMAT_JSON
    parse_user_info: bool = False
    token_type_hint: Literal["access_token", "refresh_token"] | None = Field(default=None)
