"""OAuth 2.0 / OpenID Connect protocol client.

A ProtocolClient learns the provider's endpoints through discovery (init())
and then performs the protocol operations against them:

    create_authorization_url  - authorization endpoint URL (web server flow)
    grant                     - token endpoint (authorization_code,
                                refresh_token, jwt-bearer)
    introspect                - introspection endpoint (RFC 7662)
    revoke                    - revocation endpoint (RFC 7009)
    userinfo                  - userinfo endpoint
    identity                  - Identity URL returned with a grant

A client is shared by every Environment with the same cache key, so the
operations that authenticate or verify accept the caller's Environment
through `env=`; the Environment given at construction is only the default.

Transport errors (timeouts, connection failures) and non-2xx discovery
responses are httpx exceptions and propagate unchanged. No operation is
retried.

Usage:
    async with ProtocolClient(env) as client:
        await client.init()
        url = client.create_authorization_url(opts=AuthOptions(state="xyz"))
"""

from __future__ import annotations

__all__ = [
    "DiscoveredEndpoints",
    "ProtocolClient",
]

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from sfdc_auth.client.assertion import build_client_assertion, build_grant_assertion
from sfdc_auth.client.identity import parse_user_info, verify_token_response
from sfdc_auth.config import Environment
from sfdc_auth.constants import (
    CLIENT_ASSERTION_TYPE_JWT_BEARER,
    DISCOVERY_PATH,
    RESPONSE_FORMAT_JSON,
)
from sfdc_auth.exceptions import (
    ClientNotInitializedError,
    ConfigurationError,
    GrantError,
    ProtocolError,
    VerificationError,
)
from sfdc_auth.models import (
    AccessTokenResponse,
    AuthCodeGrant,
    AuthOptions,
    GrantOptions,
    GrantRequest,
    IntrospectionOptions,
    IntrospectionResponse,
    JwtBearerGrant,
    RefreshGrant,
    RevocationOptions,
    UserInfoOptions,
)
from sfdc_auth.telemetry.system_logger import get_system_logger

_logger = get_system_logger()


@dataclass(frozen=True)
class DiscoveredEndpoints:
    """Endpoints published in the provider's discovery document.

    Attributes:
        authorization_endpoint: Authorization endpoint.
        token_endpoint: Token endpoint.
        revocation_endpoint: Revocation endpoint.
        userinfo_endpoint: Userinfo endpoint.
        introspection_endpoint: Introspection endpoint, if advertised.
    """

    authorization_endpoint: str
    token_endpoint: str
    revocation_endpoint: str
    userinfo_endpoint: str
    introspection_endpoint: str | None = None

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "DiscoveredEndpoints":
        """Extract endpoints from a discovery document.

        Raises:
            ProtocolError: If a required endpoint is missing.
        """
        required = (
            "authorization_endpoint",
            "token_endpoint",
            "revocation_endpoint",
            "userinfo_endpoint",
        )
        for name in required:
            if not isinstance(document.get(name), str) or not document[name]:
                raise ProtocolError(f"Discovery document is missing {name}")

        introspection = document.get("introspection_endpoint")
        return cls(
            authorization_endpoint=document["authorization_endpoint"],
            token_endpoint=document["token_endpoint"],
            revocation_endpoint=document["revocation_endpoint"],
            userinfo_endpoint=document["userinfo_endpoint"],
            introspection_endpoint=introspection if isinstance(introspection, str) else None,
        )


class ProtocolClient:
    """Protocol operations against one provider.

    Lifecycle is uninitialized -> initialized. Every operation except
    identity() raises ClientNotInitializedError until init() succeeds.
    """

    def __init__(self, env: Environment, http_client: httpx.AsyncClient | None = None) -> None:
        """Initialize the client.

        Args:
            env: Validated provider environment.
            http_client: Optional httpx client (for testing). When omitted the
                ProtocolClient owns and closes its own client.
        """
        self._env = env
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None
        self._endpoints: DiscoveredEndpoints | None = None

    @property
    def env(self) -> Environment:
        """Environment the client was created for (issuer and timeout are shared by every caller)."""
        return self._env

    @property
    def initialized(self) -> bool:
        """True once discovery has completed."""
        return self._endpoints is not None

    @property
    def endpoints(self) -> DiscoveredEndpoints:
        """Discovered endpoints.

        Raises:
            ClientNotInitializedError: Before init() has succeeded.
        """
        if self._endpoints is None:
            raise ClientNotInitializedError()
        return self._endpoints

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance owns it."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "ProtocolClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # =========================================================================
    # Discovery
    # =========================================================================

    async def init(self) -> "ProtocolClient":
        """Fetch the discovery document and record the provider endpoints.

        Returns:
            self, for chaining.

        Raises:
            httpx.HTTPStatusError: If discovery returns a non-2xx status.
            httpx.HTTPError: On transport failure.
            ProtocolError: If the document lacks a required endpoint.
        """
        url = f"{self._env.issuer_uri.rstrip('/')}{DISCOVERY_PATH}"
        response = await self._http.get(url, timeout=self._env.http_timeout)
        response.raise_for_status()

        self._endpoints = DiscoveredEndpoints.from_document(response.json())
        _logger.info(
            {
                "event": "discovery_completed",
                "message": f"OpenID client initialized for {self._env.issuer_uri}",
                "issuer": self._env.issuer_uri,
                "introspection": self._endpoints.introspection_endpoint is not None,
            }
        )
        return self

    # =========================================================================
    # Authorization URL
    # =========================================================================

    def create_authorization_url(
        self,
        params: dict[str, Any] | None = None,
        opts: AuthOptions | None = None,
        *,
        env: Environment | None = None,
    ) -> str:
        """Build the authorization endpoint URL for the web server flow.

        Defaults (client_id, redirect_uri, response_type=code) are overridden
        by opts and then by params. None values are dropped.

        Args:
            params: Extra query parameters.
            opts: Typed authorization options.
            env: Caller's environment (default: the construction environment).

        Returns:
            Authorization URL.

        Raises:
            ClientNotInitializedError: Before init() has succeeded.
        """
        env = env or self._env
        endpoint = self.endpoints.authorization_endpoint

        query: dict[str, Any] = {
            "client_id": env.client_id,
            "redirect_uri": env.redirect_uri,
            "response_type": "code",
        }
        if opts is not None:
            query.update(opts.to_params())
        if params:
            query.update(params)

        query = {key: value for key, value in query.items() if value is not None}
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(query, quote_via=quote)}"

    # =========================================================================
    # Grant
    # =========================================================================

    async def grant(
        self,
        request: GrantRequest,
        opts: GrantOptions | None = None,
        *,
        env: Environment | None = None,
    ) -> AccessTokenResponse:
        """Exchange a grant at the token endpoint and verify the response.

        Args:
            request: Authorization code, refresh token or JWT-bearer grant.
            opts: Verification and client authentication options.
            env: Caller's environment; its client credentials, signing key,
                redirect URI and client secret are used for this grant.

        Returns:
            Verified token response.

        Raises:
            ClientNotInitializedError: Before init() has succeeded.
            GrantError: If a required grant parameter is missing or the
                response fails verification.
            ConfigurationError: If secret-based client authentication is
                requested without a client secret.
            AssertionSigningError: If an assertion cannot be signed.
            ProtocolError: If the provider rejects the grant.
        """
        env = env or self._env
        opts = opts or GrantOptions()
        endpoint = self.endpoints.token_endpoint

        form = _grant_parameters(env, request, opts, endpoint)
        response = await self._http.post(
            endpoint,
            data=form,
            headers={"Accept": opts.response_format},
            timeout=self._env.http_timeout,
        )

        if response.status_code != 200:
            error = _protocol_error(response, "Failed to obtain grant")
            _logger.warning(
                {
                    "event": "grant_rejected",
                    "message": str(error),
                    "grant_type": request.grant_type,
                    "status_code": response.status_code,
                }
            )
            raise error

        token_response = AccessTokenResponse.model_validate(response.json())

        try:
            return verify_token_response(env, token_response, opts)
        except VerificationError as e:
            raise GrantError(f"Failed to obtain grant: {e}.") from e

    # =========================================================================
    # Introspection
    # =========================================================================

    async def introspect(
        self,
        token: str,
        opts: IntrospectionOptions | None = None,
        *,
        env: Environment | None = None,
    ) -> IntrospectionResponse:
        """Introspect a token (RFC 7662).

        Args:
            token: Access or refresh token.
            opts: Introspection options.
            env: Caller's environment, whose client credentials authenticate
                the request.

        Returns:
            Introspection response. user_info is parsed from `sub` when
            opts.parse_user_info is set and the token is active.

        Raises:
            ClientNotInitializedError: Before init() has succeeded.
            ProtocolError: If the provider has no introspection endpoint or
                rejects the request.
            ConfigurationError: If no client secret is configured.
        """
        env = env or self._env
        opts = opts or IntrospectionOptions()
        endpoint = self.endpoints.introspection_endpoint
        if endpoint is None:
            raise ProtocolError("OpenID client does not support token introspection")

        form = {
            "token": token,
            "client_id": env.client_id,
            "client_secret": _require_client_secret(env),
        }
        if opts.token_type_hint is not None:
            form["token_type_hint"] = opts.token_type_hint

        response = await self._http.post(
            endpoint,
            data=form,
            headers={"Accept": opts.response_format},
            timeout=self._env.http_timeout,
        )
        if response.status_code != 200:
            raise _protocol_error(response, "Failed to introspect token")

        result = IntrospectionResponse.model_validate(response.json())
        if opts.parse_user_info and result.active and result.sub:
            try:
                result = parse_user_info(result, field="sub")
            except VerificationError as e:
                raise ProtocolError(f"Failed to introspect token: {e}.") from e
        return result

    # =========================================================================
    # Revocation
    # =========================================================================

    async def revoke(self, token: str, opts: RevocationOptions | None = None) -> bool:
        """Revoke an access or refresh token.

        Args:
            token: Token to revoke.
            opts: use_get sends the token as a query parameter.

        Returns:
            True if the provider answered 200.

        Raises:
            ClientNotInitializedError: Before init() has succeeded.
        """
        opts = opts or RevocationOptions()
        endpoint = self.endpoints.revocation_endpoint

        if opts.use_get:
            response = await self._http.get(
                endpoint,
                params={"token": token},
                timeout=self._env.http_timeout,
            )
        else:
            response = await self._http.post(
                endpoint,
                data={"token": token},
                timeout=self._env.http_timeout,
            )

        revoked = response.status_code == 200
        if not revoked:
            _logger.warning(
                {
                    "event": "revocation_failed",
                    "message": f"Token revocation returned HTTP {response.status_code}",
                    "status_code": response.status_code,
                }
            )
        return revoked

    # =========================================================================
    # Userinfo / Identity
    # =========================================================================

    async def userinfo(self, token: str, opts: UserInfoOptions | None = None) -> dict[str, Any] | str:
        """Fetch user information for an access token.

        Args:
            token: Access token.
            opts: response_format selects the Accept header.

        Returns:
            Parsed JSON object when JSON was requested, raw text otherwise.

        Raises:
            ClientNotInitializedError: Before init() has succeeded.
            ProtocolError: If the provider answers with a non-200 status.
        """
        opts = opts or UserInfoOptions()
        response = await self._http.get(
            self.endpoints.userinfo_endpoint,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": opts.response_format,
            },
            timeout=self._env.http_timeout,
        )
        if response.status_code != 200:
            raise ProtocolError(
                f"Failed to obtain user information: {response.text}.",
                status_code=response.status_code,
            )

        if opts.response_format == RESPONSE_FORMAT_JSON:
            return response.json()
        return response.text

    async def identity(self, url: str, token: str) -> dict[str, Any]:
        """Fetch the identity document behind an Identity URL.

        Args:
            url: Identity URL (as returned in the `id` field of a grant).
            token: Access token issued with that grant.

        Returns:
            Identity claims.

        Raises:
            ProtocolError: If the provider answers with a non-200 status or
                the body is not a JSON object.
        """
        response = await self._http.get(
            url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": RESPONSE_FORMAT_JSON,
            },
            timeout=self._env.http_timeout,
        )
        if response.status_code != 200:
            raise ProtocolError(
                f"Failed to obtain identity information: {response.text}.",
                status_code=response.status_code,
            )

        try:
            claims = response.json()
        except ValueError:
            claims = None
        if not isinstance(claims, dict):
            raise ProtocolError(
                "Failed to obtain identity information: response is not a JSON object.",
                status_code=response.status_code,
            )
        return claims


# =============================================================================
# Grant parameters
# =============================================================================


def _grant_parameters(
    env: Environment,
    request: GrantRequest,
    opts: GrantOptions,
    token_endpoint: str,
) -> dict[str, str]:
    if isinstance(request, AuthCodeGrant):
        if not request.code:
            raise GrantError("Missing required string parameter: code")
        redirect_uri = request.redirect_uri or env.redirect_uri
        if not redirect_uri:
            raise GrantError("Missing required string parameter: redirectUri")
        form = {
            "grant_type": request.grant_type,
            "code": request.code,
            "redirect_uri": redirect_uri,
        }
    elif isinstance(request, RefreshGrant):
        if not request.refresh_token:
            raise GrantError("Missing required string parameter: refresh_token")
        form = {
            "grant_type": request.grant_type,
            "refresh_token": request.refresh_token,
        }
    elif isinstance(request, JwtBearerGrant):
        if request.user is None:
            raise GrantError("Missing required object parameter: user.")
        if not request.user.username:
            raise GrantError("Missing required string parameter: user[username]")
        # The assertion authenticates both the user and the client
        return {
            "grant_type": request.grant_type,
            "assertion": build_grant_assertion(env, request.user),
        }
    else:
        raise TypeError(f"Unsupported grant request: {type(request).__name__}")

    form.update(_client_authentication(env, opts.use_jwt, token_endpoint))
    return form


def _client_authentication(env: Environment, use_jwt: bool, token_endpoint: str) -> dict[str, str]:
    params = {"client_id": env.client_id}
    if use_jwt:
        params["client_assertion_type"] = CLIENT_ASSERTION_TYPE_JWT_BEARER
        params["client_assertion"] = build_client_assertion(env, token_endpoint)
    else:
        params["client_secret"] = _require_client_secret(env)
    return params


def _require_client_secret(env: Environment) -> str:
    if not env.client_secret:
        raise ConfigurationError(
            "Missing required string parameter: client_secret",
            field="client_secret",
        )
    return env.client_secret


def _protocol_error(response: httpx.Response, prefix: str) -> ProtocolError:
    """Build a ProtocolError from an OAuth error response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and "error" in body:
        error = str(body["error"])
        description = body.get("error_description")
        message = f"{prefix}: {error} ({description})." if description else f"{prefix}: {error}."
        return ProtocolError(
            message,
            status_code=response.status_code,
            error=error,
            error_description=description,
        )

    error = f"HTTP {response.status_code}"
    return ProtocolError(
        f"{prefix}: {error} ({response.text}).",
        status_code=response.status_code,
        error=error,
        error_description=response.text,
    )
