"""Helpers shared by pipeline stages: bearer extraction and the failure path."""

from __future__ import annotations

__all__ = [
    "StageHandler",
    "client_ip",
    "extract_access_token",
    "fail",
    "resolve_authorization",
]

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, NoReturn

from fastapi import Request

from sfdc_auth.constants import BEARER_PATTERN
from sfdc_auth.exceptions import AccessDeniedError, SfdcAuthError
from sfdc_auth.pipeline.context import AuthContext
from sfdc_auth.telemetry.events import AuthEvent
from sfdc_auth.telemetry.system_logger import get_system_logger

if TYPE_CHECKING:
    from sfdc_auth.pipeline.server import ServerConfig

logger = get_system_logger()

StageHandler = Callable[[Request, "AuthContext | None"], Awaitable[AuthContext]]


def client_ip(request: Request) -> str | None:
    """Return the remote address of the request, if known."""
    return request.client.host if request.client else None


def resolve_authorization(request: Request, context: AuthContext | None) -> str | None:
    """Return the Authorization value, preferring one set earlier in the pipeline."""
    if context is not None and context.authorization:
        return context.authorization
    return request.headers.get("authorization")


def extract_access_token(authorization: str | None) -> str:
    """Extract the token from a "Bearer <token>" Authorization value.

    Raises:
        SfdcAuthError: If the value is missing or not a bearer credential.
    """
    if not authorization:
        raise SfdcAuthError("Missing required string parameter: headers[authorization].")

    match = BEARER_PATTERN.match(authorization)
    if match is None:
        raise SfdcAuthError("Authorization header with 'Bearer ***...' required.")
    return match.group(1)


def fail(server_config: "ServerConfig", error: Exception, request: Request) -> NoReturn:
    """Deny the request.

    Emits an access_denied event, logs a warning and raises AccessDeniedError
    chained to the original error.

    Raises:
        AccessDeniedError: Always.
    """
    ip = client_ip(request) or "unknown"
    reason = str(error)
    message = f"Access denied to: {ip}. Error: {reason}"

    server_config.events.emit(AuthEvent.ACCESS_DENIED, message)
    logger.warning(
        {
            "event": "access_denied",
            "message": message,
            "component": "pipeline",
            "details": {
                "client_ip": ip,
                "path": request.url.path,
                "error_type": type(error).__name__,
            },
        }
    )
    raise AccessDeniedError(message, client_ip=ip, reason=reason) from error
