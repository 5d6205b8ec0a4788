"""Per-request authentication context.

The context is an immutable accumulator: each stage returns a new context via
merge(), which keeps every field the stage does not set.
"""

from __future__ import annotations

__all__ = ["AuthContext"]

from dataclasses import dataclass, replace
from typing import Any

from sfdc_auth.models import IntrospectionResponse, User, UserInfo

# Sentinel distinguishing "not supplied" from an explicit None
_UNSET: Any = object()


@dataclass(frozen=True)
class AuthContext:
    """Authentication state accumulated while processing one request.

    Attributes:
        user: Authenticated user.
        access_token: Raw access token (only when a stage is configured to keep it).
        authorization: Authorization header value set by the callback stage.
        user_info: User information from the Identity URL.
        identity: Identity claims fetched from the Identity URL.
        grant_checked: True once a JWT-bearer grant succeeded for user.
        token_information: Token introspection result.
    """

    user: User | None = None
    access_token: str | None = None
    authorization: str | None = None
    user_info: UserInfo | None = None
    identity: dict[str, Any] | None = None
    grant_checked: bool = False
    token_information: IntrospectionResponse | None = None

    def merge(
        self,
        *,
        user: User | None = _UNSET,
        access_token: str | None = _UNSET,
        authorization: str | None = _UNSET,
        user_info: UserInfo | None = _UNSET,
        identity: dict[str, Any] | None = _UNSET,
        grant_checked: bool = _UNSET,
        token_information: IntrospectionResponse | None = _UNSET,
    ) -> "AuthContext":
        """Return a copy with the supplied fields replaced."""
        changes = {
            name: value
            for name, value in (
                ("user", user),
                ("access_token", access_token),
                ("authorization", authorization),
                ("user_info", user_info),
                ("identity", identity),
                ("grant_checked", grant_checked),
                ("token_information", token_information),
            )
            if value is not _UNSET
        }
        return replace(self, **changes)
