"""Pipeline runner and Starlette/FastAPI middleware adapter.

AuthPipeline runs stages in order, threading the AuthContext through them,
and stops at the first AccessDeniedError. AuthPipelineMiddleware runs a
pipeline per request and stores the resulting context on request.state.auth.
The response for a denied request is built by the caller's on_denied
callable; status codes are an application decision.
"""

from __future__ import annotations

__all__ = [
    "AuthPipeline",
    "AuthPipelineMiddleware",
    "DeniedHandler",
]

import inspect
from collections.abc import Awaitable, Callable, Sequence

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from sfdc_auth.exceptions import AccessDeniedError
from sfdc_auth.pipeline.common import StageHandler
from sfdc_auth.pipeline.context import AuthContext

DeniedHandler = Callable[[Request, AccessDeniedError], "Response | Awaitable[Response]"]


class AuthPipeline:
    """An ordered sequence of stage handlers."""

    def __init__(self, stages: Sequence[StageHandler]) -> None:
        self._stages = tuple(stages)

    def __len__(self) -> int:
        return len(self._stages)

    async def run(self, request: Request, context: AuthContext | None = None) -> AuthContext:
        """Run every stage in order.

        Args:
            request: Incoming request.
            context: Initial context (default: empty).

        Returns:
            Context produced by the last stage.

        Raises:
            AccessDeniedError: From the first stage that denies the request.
        """
        context = context or AuthContext()
        for stage in self._stages:
            context = await stage(request, context)
        return context


class AuthPipelineMiddleware(BaseHTTPMiddleware):
    """Run an AuthPipeline before every request reaches the application.

    Usage:
        app.add_middleware(
            AuthPipelineMiddleware,
            pipeline=AuthPipeline([token_validator(server)]),
            on_denied=lambda request, error: JSONResponse({"error": "denied"}, 401),
        )
    """

    def __init__(self, app: ASGIApp, pipeline: AuthPipeline, on_denied: DeniedHandler) -> None:
        """Initialize middleware.

        Args:
            app: ASGI application.
            pipeline: Pipeline to run per request.
            on_denied: Builds the response for a denied request (sync or async).
        """
        super().__init__(app)
        self.pipeline = pipeline
        self.on_denied = on_denied

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Run the pipeline, then the application.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response from on_denied or from the application.
        """
        try:
            request.state.auth = await self.pipeline.run(request)
        except AccessDeniedError as e:
            response = self.on_denied(request, e)
            if inspect.isawaitable(response):
                response = await response
            return response

        return await call_next(request)
