"""Identity verification for token endpoint responses.

Each step takes a response and returns a new one; nothing is mutated. The
steps are run in order by ProtocolClient.grant() and can be toggled
independently through GrantOptions:

    decode_id_token   -> id_token_claims
    verify_signature  -> user_info = UserInfo(url=id, validated=True)
    parse_user_info   -> user_info.id / user_info.organization_id

Callers must run verify_signature before trusting parse_user_info output:
parsing alone never marks user info as validated.
"""

from __future__ import annotations

__all__ = [
    "compute_signature",
    "decode_id_token",
    "is_salesforce_response",
    "parse_user_info",
    "verify_signature",
    "verify_token_response",
]

import base64
import hashlib
import hmac
from typing import TYPE_CHECKING, TypeVar
from urllib.parse import urlparse

import jwt
from pydantic import BaseModel

from sfdc_auth.constants import SALESFORCE_ID_LENGTHS
from sfdc_auth.exceptions import VerificationError
from sfdc_auth.models import AccessTokenResponse, UserInfo

if TYPE_CHECKING:
    from sfdc_auth.config import Environment
    from sfdc_auth.models import GrantOptions

ResponseT = TypeVar("ResponseT", bound=BaseModel)


# =============================================================================
# ID token
# =============================================================================


def decode_id_token(response: AccessTokenResponse) -> AccessTokenResponse:
    """Decode the id_token into id_token_claims.

    The token is decoded without signature verification. An absent id_token
    is accepted only when a scope was granted and it does not include openid.

    Raises:
        VerificationError: If the id_token is required but absent, or malformed.
    """
    if response.id_token is None:
        if response.scope is not None and "openid" not in response.scopes:
            return response
        raise VerificationError("No id_token present")

    try:
        claims = jwt.decode(response.id_token, options={"verify_signature": False})
    except jwt.DecodeError as e:
        raise VerificationError(f"Invalid id_token: {e}") from e

    return response.model_copy(update={"id_token_claims": claims})


# =============================================================================
# Signature
# =============================================================================


def compute_signature(client_secret: str, identity_url: str, issued_at: str) -> str:
    """Compute the provider signature over an Identity URL and issue time.

    Returns:
        Base64 encoded HMAC-SHA256 of identity_url + issued_at.
    """
    digest = hmac.new(
        client_secret.encode("utf-8"),
        f"{identity_url}{issued_at}".encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(env: "Environment", response: AccessTokenResponse) -> AccessTokenResponse:
    """Verify the response signature and mark the Identity URL as validated.

    Any user_info already on the response is replaced.

    Args:
        env: Provider environment holding the client secret.
        response: Token endpoint response.

    Returns:
        Copy of the response with user_info = UserInfo(url=id, validated=True).

    Raises:
        VerificationError: If the signature or client secret is missing, or the
            signature does not match.
    """
    if not response.signature:
        raise VerificationError("No signature present")
    if not env.client_secret:
        raise VerificationError("Missing required string parameter: client_secret")
    if not response.id:
        raise VerificationError("No id present")

    expected = compute_signature(env.client_secret, response.id, response.issued_at or "")
    actual = response.signature

    if len(expected) != len(actual) or not hmac.compare_digest(
        expected.encode("utf-8"), actual.encode("utf-8")
    ):
        raise VerificationError("Invalid signature")

    return response.model_copy(update={"user_info": UserInfo(url=response.id, validated=True)})


# =============================================================================
# Identity URL
# =============================================================================


def parse_user_info(response: ResponseT, field: str = "id") -> ResponseT:
    """Parse user and organization IDs out of an Identity URL.

    The last path segment is the user ID, the one before it the organization
    ID; both must be 15 or 18 characters. Values already present on the
    response's user_info take precedence over parsed ones.

    Args:
        response: Response carrying the Identity URL.
        field: Name of the attribute holding the Identity URL.

    Returns:
        Copy of the response with user_info populated.

    Raises:
        VerificationError: If the URL is absent or an ID is malformed.
    """
    url = getattr(response, field, None)
    if not url:
        raise VerificationError(f"No {field} present")

    segments = [segment for segment in urlparse(url).path.split("/") if segment]
    user_id = segments[-1] if segments else ""
    organization_id = segments[-2] if len(segments) > 1 else ""

    if len(user_id) not in SALESFORCE_ID_LENGTHS:
        raise VerificationError("User ID not present")
    if len(organization_id) not in SALESFORCE_ID_LENGTHS:
        raise VerificationError("Organization ID not present")

    parsed = {"url": url, "validated": False, "id": user_id, "organization_id": organization_id}
    existing: UserInfo | None = getattr(response, "user_info", None)
    if existing is not None:
        parsed.update(
            {key: value for key, value in existing.model_dump(exclude_none=True).items() if value != ""}
        )

    return response.model_copy(update={"user_info": UserInfo(**parsed)})


# =============================================================================
# Fold
# =============================================================================


def verify_token_response(
    env: "Environment",
    response: AccessTokenResponse,
    options: "GrantOptions",
) -> AccessTokenResponse:
    """Run the enabled verification steps in order.

    Raises:
        VerificationError: From the first step that fails.
    """
    if options.decode_id_token:
        response = decode_id_token(response)
    if options.verify_signature:
        response = verify_signature(env, response)
    if options.parse_user_info:
        response = parse_user_info(response)
    return response


def is_salesforce_response(response: AccessTokenResponse) -> bool:
    """Return True if the response carries any Salesforce specific field."""
    return any(
        value is not None
        for value in (response.id, response.instance_url, response.issued_at, response.signature)
    )
