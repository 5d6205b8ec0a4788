"""Signed JWT assertions for client authentication and the JWT-bearer grant.

Two assertion shapes are produced, both signed RS256 with the configured
private key and valid for a fixed 4 minutes:

    client  iss = sub = client_id,  aud = token endpoint   (RFC 7523 section 2.2)
    grant   iss = client_id, sub = username, aud = issuer  (RFC 7523 section 2.1)

A fresh jti is generated per call so assertions are never replayable.
"""

from __future__ import annotations

__all__ = [
    "AssertionType",
    "build_client_assertion",
    "build_grant_assertion",
]

import time
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any

import jwt
from cryptography.exceptions import UnsupportedAlgorithm

from sfdc_auth.constants import ASSERTION_ALGORITHM, ASSERTION_LIFETIME_SECONDS
from sfdc_auth.exceptions import AssertionSigningError

if TYPE_CHECKING:
    from sfdc_auth.config import Environment
    from sfdc_auth.models import User


class AssertionType(str, Enum):
    """Kind of assertion being signed."""

    CLIENT = "client"
    GRANT = "grant"


def build_client_assertion(env: "Environment", token_endpoint: str) -> str:
    """Build a client-authentication assertion.

    Args:
        env: Provider environment (client_id, jwt_signing_key).
        token_endpoint: Token endpoint the assertion is addressed to.

    Returns:
        Compact RS256-signed JWT.

    Raises:
        AssertionSigningError: If the key cannot sign the assertion.
    """
    return _sign(
        AssertionType.CLIENT,
        env,
        audience=token_endpoint,
        subject=env.client_id,
    )


def build_grant_assertion(env: "Environment", user: "User") -> str:
    """Build a JWT-bearer grant assertion for a user.

    Args:
        env: Provider environment (issuer_uri, client_id, jwt_signing_key).
        user: User the token is requested for.

    Returns:
        Compact RS256-signed JWT.

    Raises:
        AssertionSigningError: If the key cannot sign the assertion.
    """
    return _sign(
        AssertionType.GRANT,
        env,
        audience=env.issuer_uri,
        subject=user.username,
    )


def _sign(
    assertion_type: AssertionType,
    env: "Environment",
    *,
    audience: str,
    subject: str,
) -> str:
    issued_at = int(time.time())
    claims: dict[str, Any] = {
        "iss": env.client_id,
        "aud": audience,
        "sub": subject,
        "iat": issued_at,
        "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
        "jti": str(uuid.uuid4()),
    }

    try:
        return jwt.encode(claims, env.jwt_signing_key, algorithm=ASSERTION_ALGORITHM)
    except (jwt.PyJWTError, ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise AssertionSigningError(assertion_type.value, str(e) or type(e).__name__) from e
