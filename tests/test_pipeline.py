"""Tests for pipeline stages, the failure path and the pipeline runner."""

from __future__ import annotations

from typing import Any

import jwt
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from fakes import (
    ACCESS_TOKEN,
    IDENTITY_URL,
    INTROSPECTION_ENDPOINT,
    TOKEN_ENDPOINT,
    USER_ID,
    USERINFO_ENDPOINT,
    FakeProvider,
    form,
    token_response,
)
from sfdc_auth.client.cache import ClientCache
from sfdc_auth.config import Environment, ProviderConfig
from sfdc_auth.exceptions import AccessDeniedError, ConfigurationError, SfdcAuthError
from sfdc_auth.models import GrantOptions, IntrospectionResponse, User, UserInfo
from sfdc_auth.pipeline import (
    AuthContext,
    AuthPipeline,
    AuthPipelineMiddleware,
    ServerConfig,
    auth_callback,
    fail,
    grant_checker,
    identity,
    token_introspection,
    token_validator,
)
from sfdc_auth.pipeline.common import extract_access_token
from sfdc_auth.telemetry.events import AuthEvent


# ============================================================================
# Fixtures
# ============================================================================


def make_request(
    headers: dict[str, str] | None = None,
    query: str = "",
    client: tuple[str, int] | None = ("10.0.0.1", 51234),
) -> Request:
    """Build a Starlette request from a minimal ASGI scope."""
    scope: dict[str, Any] = {
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "server": ("testserver", 80),
        "path": "/auth/callback",
        "root_path": "",
        "query_string": query.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


@pytest.fixture
def server(env: Environment, cache: ClientCache) -> ServerConfig:
    """Server config with a single salesforce provider."""
    return ServerConfig(providers={"salesforce": ProviderConfig(environment=env)}, cache=cache)


@pytest.fixture
def events(server: ServerConfig) -> dict[AuthEvent, list[str]]:
    """Messages received per event."""
    received: dict[AuthEvent, list[str]] = {event: [] for event in AuthEvent}
    for event in AuthEvent:
        server.events.on(event, received[event].append)
    return received


BEARER = {"Authorization": f"Bearer {ACCESS_TOKEN}"}


# ============================================================================
# Tests: Common helpers
# ============================================================================


class TestExtractAccessToken:
    """Tests for bearer extraction."""

    def test_bearer(self) -> None:
        assert extract_access_token("Bearer abc.def") == "abc.def"

    def test_missing_header(self) -> None:
        with pytest.raises(SfdcAuthError, match=r"^Missing required string parameter: headers\[authorization\]\.$"):
            extract_access_token(None)

    def test_wrong_scheme(self) -> None:
        with pytest.raises(SfdcAuthError, match=r"^Authorization header with 'Bearer \*\*\*\.\.\.' required\.$"):
            extract_access_token("Basic dXNlcjpwYXNz")


class TestFail:
    """Tests for the shared failure path."""

    def test_message_emits_and_raises(self, server: ServerConfig, events: dict) -> None:
        """Given an error, the denial names the client IP and the cause."""
        # Arrange
        cause = ValueError("boom")

        # Act
        with pytest.raises(AccessDeniedError) as exc:
            fail(server, cause, make_request())

        # Assert
        assert str(exc.value) == "Access denied to: 10.0.0.1. Error: boom"
        assert exc.value.client_ip == "10.0.0.1"
        assert exc.value.reason == "boom"
        assert exc.value.__cause__ is cause
        assert events[AuthEvent.ACCESS_DENIED] == ["Access denied to: 10.0.0.1. Error: boom"]

    def test_unknown_ip(self, server: ServerConfig) -> None:
        """Given no client address, the IP is reported as unknown."""
        with pytest.raises(AccessDeniedError, match=r"^Access denied to: unknown\. Error: boom$"):
            fail(server, ValueError("boom"), make_request(client=None))


class TestServerConfig:
    """Tests for provider lookup."""

    def test_unknown_provider(self, server: ServerConfig) -> None:
        """Given an unregistered provider name, stage creation fails."""
        with pytest.raises(ConfigurationError, match="Unknown provider: google"):
            token_validator(server, "google")


# ============================================================================
# Tests: Stages
# ============================================================================


class TestAuthCallback:
    """Tests for the auth_callback stage."""

    async def test_exchanges_code(
        self,
        server: ServerConfig,
        provider: FakeProvider,
        events: dict,
    ) -> None:
        """Given a code, the Authorization value and validated user info are recorded."""
        # Arrange
        provider.reply("POST", TOKEN_ENDPOINT, json_body=token_response())
        handler = auth_callback(server)

        # Act
        context = await handler(make_request(query="code=testCode&state=xyz"))

        # Assert
        assert form(provider.requests_to(TOKEN_ENDPOINT)[0])["code"] == "testCode"
        assert context.authorization == f"Bearer {ACCESS_TOKEN}"
        assert context.user_info is not None
        assert context.user_info.validated is True
        assert context.user_info.id == USER_ID
        assert context.access_token is None
        assert events[AuthEvent.AUTHORIZATION_HEADER_SET] == [
            f"Authorization headers set for user ({USER_ID}) [10.0.0.1]."
        ]

    async def test_email_claim_names_user(self, server: ServerConfig, provider: FakeProvider, events: dict) -> None:
        """Given an ID token with an email claim, the event names the email."""
        # Arrange
        id_token = jwt.encode({"sub": "1", "email": "test@test.com"}, "an-hmac-secret-of-at-least-32-bytes", algorithm="HS256")
        provider.reply("POST", TOKEN_ENDPOINT, json_body=token_response(id_token=id_token))
        handler = auth_callback(server)

        # Act
        await handler(make_request(query="code=testCode"))

        # Assert
        assert events[AuthEvent.AUTHORIZATION_HEADER_SET] == [
            "Authorization headers set for user (test@test.com) [10.0.0.1]."
        ]

    async def test_plain_oauth_response_names_unknown_user(
        self,
        server: ServerConfig,
        provider: FakeProvider,
        events: dict,
    ) -> None:
        """Given a response without Salesforce fields, the user is unknown and prior user info is kept."""
        # Arrange
        provider.reply(
            "POST",
            TOKEN_ENDPOINT,
            json_body={"access_token": ACCESS_TOKEN, "token_type": "Bearer", "scope": "api"},
        )
        handler = auth_callback(server, opts=GrantOptions(verify_signature=False, parse_user_info=False))
        prior = UserInfo(url=IDENTITY_URL, validated=True)

        # Act
        context = await handler(make_request(query="code=testCode"), AuthContext(user_info=prior))

        # Assert
        assert context.authorization == f"Bearer {ACCESS_TOKEN}"
        assert context.user_info == prior
        assert events[AuthEvent.AUTHORIZATION_HEADER_SET] == [
            "Authorization headers set for user (unknown) [10.0.0.1]."
        ]

    async def test_sets_token_on_context(
        self,
        env: Environment,
        cache: ClientCache,
        provider: FakeProvider,
    ) -> None:
        """Given set_token_on_context, the raw access token is kept."""
        # Arrange
        server = ServerConfig(
            providers={"salesforce": ProviderConfig(environment=env, set_token_on_context=True)},
            cache=cache,
        )
        provider.reply("POST", TOKEN_ENDPOINT, json_body=token_response())
        handler = auth_callback(server)

        # Act
        context = await handler(make_request(query="code=testCode"))

        # Assert
        assert context.access_token == ACCESS_TOKEN

    async def test_provider_error_in_query(self, server: ServerConfig, events: dict) -> None:
        """Given an error in the callback query, access is denied with that error."""
        # Arrange
        handler = auth_callback(server)

        # Act & Assert
        with pytest.raises(AccessDeniedError, match=r"Error: access_denied$"):
            await handler(make_request(query="error=access_denied"))
        assert len(events[AuthEvent.ACCESS_DENIED]) == 1

    async def test_missing_code(self, server: ServerConfig) -> None:
        """Given no code, access is denied."""
        handler = auth_callback(server)
        with pytest.raises(AccessDeniedError, match=r"Missing required string parameter: query\[code\]"):
            await handler(make_request())

    async def test_invalid_signature_denied(self, server: ServerConfig, provider: FakeProvider) -> None:
        """Given a token response with a bad signature, access is denied."""
        # Arrange
        provider.reply("POST", TOKEN_ENDPOINT, json_body=token_response(issued_at="1"))
        handler = auth_callback(server)

        # Act & Assert
        with pytest.raises(AccessDeniedError, match="Invalid signature"):
            await handler(make_request(query="code=testCode"))


class TestTokenValidator:
    """Tests for the token_validator stage."""

    async def test_sets_user(self, server: ServerConfig, provider: FakeProvider, events: dict) -> None:
        """Given a valid bearer token, the user is set from userinfo."""
        # Arrange
        provider.reply(
            "GET",
            USERINFO_ENDPOINT,
            json_body={"preferred_username": "test@test.com", "organization_id": "00Dxx0000001gPLEAY"},
        )
        handler = token_validator(server)

        # Act
        context = await handler(make_request(headers=BEARER))

        # Assert
        assert context.user == User(username="test@test.com", organization_id="00Dxx0000001gPLEAY")
        assert events[AuthEvent.TOKEN_VALIDATED] == ["Token validated for test@test.com (10.0.0.1)."]

    async def test_missing_header(self, server: ServerConfig) -> None:
        """Given no Authorization header, access is denied."""
        handler = token_validator(server)
        with pytest.raises(AccessDeniedError, match=r"headers\[authorization\]"):
            await handler(make_request())

    async def test_rejected_token(self, server: ServerConfig, provider: FakeProvider) -> None:
        """Given a token the provider rejects, access is denied."""
        # Arrange
        provider.reply("GET", USERINFO_ENDPOINT, status_code=403, text="Bad_OAuth_Token")
        handler = token_validator(server)

        # Act & Assert
        with pytest.raises(AccessDeniedError, match="Failed to retrieve user information"):
            await handler(make_request(headers=BEARER))

    async def test_preserves_other_fields(self, server: ServerConfig, provider: FakeProvider) -> None:
        """Given a context with user info, only the user is replaced."""
        # Arrange
        provider.reply("GET", USERINFO_ENDPOINT, json_body={"preferred_username": "test@test.com"})
        handler = token_validator(server)
        user_info = UserInfo(url=IDENTITY_URL, validated=True)

        # Act
        context = await handler(make_request(headers=BEARER), AuthContext(user_info=user_info))

        # Assert
        assert context.user_info == user_info
        assert context.user is not None


class TestTokenIntrospection:
    """Tests for the token_introspection stage."""

    async def test_sets_token_information(self, server: ServerConfig, provider: FakeProvider, events: dict) -> None:
        """Given an active token, token information and user are set."""
        # Arrange
        provider.reply("POST", INTROSPECTION_ENDPOINT, json_body={"active": True, "username": "test@test.com"})
        handler = token_introspection(server)

        # Act
        context = await handler(make_request(headers=BEARER))

        # Assert
        assert context.token_information == IntrospectionResponse(active=True, username="test@test.com")
        assert context.user == User(username="test@test.com")
        assert events[AuthEvent.TOKEN_INTROSPECTED] == ["Token introspected for user (test@test.com) [10.0.0.1]."]

    async def test_inactive_token_denied(self, server: ServerConfig, provider: FakeProvider) -> None:
        """Given an inactive token, access is denied."""
        # Arrange
        provider.reply("POST", INTROSPECTION_ENDPOINT, json_body={"active": False})
        handler = token_introspection(server)

        # Act & Assert
        with pytest.raises(AccessDeniedError, match="Token is not active"):
            await handler(make_request(headers=BEARER))


class TestGrantChecker:
    """Tests for the grant_checker stage."""

    async def test_grant_checked(self, server: ServerConfig, provider: FakeProvider, events: dict) -> None:
        """Given a user on the context, a JWT-bearer grant is attempted without signature checks."""
        # Arrange
        provider.reply("POST", TOKEN_ENDPOINT, json_body=token_response(signature=None))
        handler = grant_checker(server)

        # Act
        context = await handler(make_request(), AuthContext(user=User(username="test@test.com")))

        # Assert
        assert context.grant_checked is True
        assert form(provider.requests_to(TOKEN_ENDPOINT)[0])["grant_type"] == (
            "urn:ietf:params:oauth:grant-type:jwt-bearer"
        )
        assert events[AuthEvent.GRANT_CHECKED] == ["Grant checked for test@test.com (10.0.0.1)."]

    async def test_missing_user(self, server: ServerConfig) -> None:
        """Given no user on the context, access is denied."""
        handler = grant_checker(server)
        with pytest.raises(AccessDeniedError, match="Missing required object parameter: user$"):
            await handler(make_request())

    async def test_empty_username(self, server: ServerConfig) -> None:
        """Given an empty username, access is denied."""
        handler = grant_checker(server)
        with pytest.raises(AccessDeniedError, match=r"Invalid parameter: user\[username\] cannot be empty"):
            await handler(make_request(), AuthContext(user=User(username="")))


class TestIdentity:
    """Tests for the identity stage."""

    async def test_retrieves_identity(self, server: ServerConfig, provider: FakeProvider, events: dict) -> None:
        """Given a validated Identity URL, the identity document is stored."""
        # Arrange
        provider.reply("GET", IDENTITY_URL, json_body={"username": "test@test.com"})
        handler = identity(server)
        context = AuthContext(user_info=UserInfo(url=IDENTITY_URL, validated=True))

        # Act
        result = await handler(make_request(headers=BEARER), context)

        # Assert
        assert result.identity == {"username": "test@test.com"}
        assert provider.requests_to(IDENTITY_URL)[0].headers["authorization"] == f"Bearer {ACCESS_TOKEN}"
        assert events[AuthEvent.IDENTITY_RETRIEVED] == [
            "Identity information retrieved for user (test@test.com) [10.0.0.1]."
        ]

    async def test_unvalidated_url_denied(self, server: ServerConfig, provider: FakeProvider) -> None:
        """Given an Identity URL that was not validated, access is denied without a request."""
        # Arrange
        handler = identity(server)
        context = AuthContext(user_info=UserInfo(url=IDENTITY_URL, validated=False))

        # Act & Assert
        with pytest.raises(AccessDeniedError, match=r"The Identity URL must be validated\.$"):
            await handler(make_request(headers=BEARER), context)
        assert provider.requests_to(IDENTITY_URL) == []

    async def test_non_object_identity_denied(
        self,
        server: ServerConfig,
        provider: FakeProvider,
        events: dict,
    ) -> None:
        """Given an identity document that is a JSON array, access is denied through the failure path."""
        # Arrange
        provider.reply("GET", IDENTITY_URL, json_body=["test@test.com"])
        handler = identity(server)
        context = AuthContext(user_info=UserInfo(url=IDENTITY_URL, validated=True))

        # Act & Assert
        with pytest.raises(AccessDeniedError, match="response is not a JSON object"):
            await handler(make_request(headers=BEARER), context)
        assert len(events[AuthEvent.ACCESS_DENIED]) == 1
        assert events[AuthEvent.IDENTITY_RETRIEVED] == []

    async def test_uses_authorization_from_context(self, server: ServerConfig, provider: FakeProvider) -> None:
        """Given an Authorization value set by the callback stage, no header is needed."""
        # Arrange
        provider.reply("GET", IDENTITY_URL, json_body={"username": "test@test.com"})
        handler = identity(server)
        context = AuthContext(
            authorization="Bearer from-callback",
            user_info=UserInfo(url=IDENTITY_URL, validated=True),
        )

        # Act
        await handler(make_request(), context)

        # Assert
        assert provider.requests_to(IDENTITY_URL)[0].headers["authorization"] == "Bearer from-callback"


# ============================================================================
# Tests: Pipeline
# ============================================================================


class TestAuthPipeline:
    """Tests for AuthPipeline."""

    async def test_callback_then_identity(self, server: ServerConfig, provider: FakeProvider) -> None:
        """Given a callback followed by identity, both results land on the context."""
        # Arrange
        provider.reply("POST", TOKEN_ENDPOINT, json_body=token_response())
        provider.reply("GET", IDENTITY_URL, json_body={"username": "test@test.com"})
        pipeline = AuthPipeline([auth_callback(server), identity(server)])

        # Act
        context = await pipeline.run(make_request(query="code=testCode"))

        # Assert
        assert context.authorization == f"Bearer {ACCESS_TOKEN}"
        assert context.identity == {"username": "test@test.com"}

    async def test_stops_at_first_failure(
        self,
        server: ServerConfig,
        provider: FakeProvider,
        events: dict,
    ) -> None:
        """Given a failing first stage, later stages do not run and one denial is emitted."""
        # Arrange
        pipeline = AuthPipeline([token_validator(server), grant_checker(server)])

        # Act & Assert
        with pytest.raises(AccessDeniedError):
            await pipeline.run(make_request())
        assert len(events[AuthEvent.ACCESS_DENIED]) == 1
        assert provider.requests_to(TOKEN_ENDPOINT) == []
        assert events[AuthEvent.GRANT_CHECKED] == []

    def test_len(self, server: ServerConfig) -> None:
        assert len(AuthPipeline([token_validator(server), identity(server)])) == 2


# ============================================================================
# Tests: Middleware
# ============================================================================


async def allow_user(request: Request, context: AuthContext | None = None) -> AuthContext:
    return (context or AuthContext()).merge(user=User(username="test@test.com"))


async def deny(request: Request, context: AuthContext | None = None) -> AuthContext:
    raise AccessDeniedError("Access denied to: testclient. Error: nope", client_ip="testclient", reason="nope")


def build_app(pipeline: AuthPipeline, on_denied) -> FastAPI:
    app = FastAPI()
    app.add_middleware(AuthPipelineMiddleware, pipeline=pipeline, on_denied=on_denied)

    @app.get("/whoami")
    async def whoami(request: Request) -> dict[str, Any]:
        return {"username": request.state.auth.user.username}

    return app


def deny_with_401(request: Request, error: AccessDeniedError) -> JSONResponse:
    return JSONResponse({"error": error.reason}, status_code=401)


class TestAuthPipelineMiddleware:
    """Tests for AuthPipelineMiddleware."""

    def test_allowed_request_sees_context(self) -> None:
        """Given a passing pipeline, the handler reads the context from request.state.auth."""
        # Arrange
        client = TestClient(build_app(AuthPipeline([allow_user]), deny_with_401))

        # Act
        response = client.get("/whoami")

        # Assert
        assert response.status_code == 200
        assert response.json() == {"username": "test@test.com"}

    def test_denied_request_uses_handler(self) -> None:
        """Given a denying pipeline, on_denied builds the response and the route never runs."""
        # Arrange
        client = TestClient(build_app(AuthPipeline([deny, allow_user]), deny_with_401))

        # Act
        response = client.get("/whoami")

        # Assert
        assert response.status_code == 401
        assert response.json() == {"error": "nope"}

    def test_async_denied_handler(self) -> None:
        """Given an async on_denied, its awaited response is returned."""

        # Arrange
        async def deny_with_403(request: Request, error: AccessDeniedError) -> JSONResponse:
            return JSONResponse({"error": error.reason}, status_code=403)

        client = TestClient(build_app(AuthPipeline([deny]), deny_with_403))

        # Act
        response = client.get("/whoami")

        # Assert
        assert response.status_code == 403
