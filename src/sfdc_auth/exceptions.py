"""Custom exceptions for sfdc-auth.

This module contains all custom exceptions used throughout the package.
Exceptions are organized by where they originate:

Configuration Errors (fail fast, never retried):
    - ConfigurationError: Missing or invalid Environment field

Protocol Errors (provider said no):
    - ProtocolError: Non-2xx response carrying an error/error_description pair
    - ClientNotInitializedError: Operation attempted before discovery

Verification Errors (always fatal to the current request):
    - VerificationError: Missing/invalid signature, ID token or Identity URL
    - AssertionSigningError: Client or grant assertion could not be signed
    - GrantError: A grant response failed the verification pipeline

Pipeline Errors:
    - AccessDeniedError: Raised by the shared failure path of the context pipeline

Transport errors (timeouts, connection failures) are httpx exceptions and are
propagated unchanged.

Usage:
    from sfdc_auth.exceptions import ConfigurationError, ProtocolError
"""

from __future__ import annotations

__all__ = [
    "AccessDeniedError",
    "AssertionSigningError",
    "ClientNotInitializedError",
    "ConfigurationError",
    "GrantError",
    "ProtocolError",
    "SfdcAuthError",
    "VerificationError",
]


class SfdcAuthError(Exception):
    """Base exception for all sfdc-auth failures."""


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(SfdcAuthError):
    """Provider configuration is missing or invalid.

    The message names the offending field, e.g.
    "Missing required string parameter: client_id".

    Attributes:
        field: Name of the first invalid field, when known.
    """

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


# =============================================================================
# Protocol
# =============================================================================


class ClientNotInitializedError(SfdcAuthError):
    """A protocol operation was attempted before discovery completed."""

    def __init__(self, message: str = "OpenID client has not been initialized") -> None:
        super().__init__(message)


class ProtocolError(SfdcAuthError):
    """The provider rejected a request.

    Attributes:
        status_code: HTTP status returned by the provider (None if not HTTP-derived).
        error: OAuth error code (e.g. "invalid_grant").
        error_description: Human-readable description from the provider.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.error_description = error_description


# =============================================================================
# Verification
# =============================================================================


class VerificationError(SfdcAuthError):
    """Identity material returned by the provider could not be verified.

    Raised when:
    - The response has no id_token but the granted scope includes openid
    - The HMAC signature is missing or does not match
    - The Identity URL is missing or malformed
    """


class AssertionSigningError(SfdcAuthError):
    """A client or grant assertion could not be signed.

    Attributes:
        assertion_type: "client" or "grant".
    """

    def __init__(self, assertion_type: str, reason: str) -> None:
        super().__init__(f"Failed to sign {assertion_type} assertion: {reason}")
        self.assertion_type = assertion_type


class GrantError(SfdcAuthError):
    """A grant could not be obtained or its response failed verification."""


# =============================================================================
# Context Pipeline
# =============================================================================


class AccessDeniedError(SfdcAuthError):
    """A pipeline stage rejected the request.

    The message is client-IP qualified:
    "Access denied to: 10.0.0.1. Error: <reason>".

    Attributes:
        client_ip: IP of the rejected client, or "unknown".
        reason: Message of the underlying failure.
    """

    def __init__(self, message: str, *, client_ip: str, reason: str) -> None:
        super().__init__(message)
        self.client_ip = client_ip
        self.reason = reason
