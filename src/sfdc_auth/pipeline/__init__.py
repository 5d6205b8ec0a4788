"""Request-processing stages sharing a per-request AuthContext."""

from __future__ import annotations

__all__ = [
    "AuthContext",
    "AuthPipeline",
    "AuthPipelineMiddleware",
    "ServerConfig",
    "auth_callback",
    "fail",
    "grant_checker",
    "identity",
    "token_introspection",
    "token_validator",
]

from sfdc_auth.pipeline.common import fail
from sfdc_auth.pipeline.context import AuthContext
from sfdc_auth.pipeline.runner import AuthPipeline, AuthPipelineMiddleware
from sfdc_auth.pipeline.server import ServerConfig
from sfdc_auth.pipeline.stages import (
    auth_callback,
    grant_checker,
    identity,
    token_introspection,
    token_validator,
)
