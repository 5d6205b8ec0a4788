"""Application-wide constants for sfdc-auth.

Constants that define protocol behavior and wire values.
For per-provider settings, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    # Discovery
    "DISCOVERY_PATH",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    # Grant types
    "GRANT_TYPE_AUTHORIZATION_CODE",
    "GRANT_TYPE_JWT_BEARER",
    "GRANT_TYPE_REFRESH_TOKEN",
    "CLIENT_ASSERTION_TYPE_JWT_BEARER",
    # Assertions
    "ASSERTION_ALGORITHM",
    "ASSERTION_LIFETIME_SECONDS",
    # Response formats
    "RESPONSE_FORMAT_JSON",
    "RESPONSE_FORMAT_URL_ENCODED",
    "RESPONSE_FORMAT_XML",
    "FORM_CONTENT_TYPE",
    # Identity URL
    "SALESFORCE_ID_LENGTHS",
    # Pipeline
    "DEFAULT_PROVIDER",
    "BEARER_PATTERN",
    "ENV_PREFIX",
]

import re

# ============================================================================
# Application Identity
# ============================================================================

APP_NAME: str = "sfdc-auth"

# ============================================================================
# Discovery
# ============================================================================

# Appended to the issuer URI (trailing slash stripped first)
DISCOVERY_PATH: str = "/.well-known/openid-configuration"

# Used when an Environment is built without an explicit timeout
DEFAULT_HTTP_TIMEOUT_SECONDS: float = 4.0

# ============================================================================
# Grant Types (RFC 6749, RFC 7523)
# ============================================================================

GRANT_TYPE_AUTHORIZATION_CODE: str = "authorization_code"
GRANT_TYPE_REFRESH_TOKEN: str = "refresh_token"
GRANT_TYPE_JWT_BEARER: str = "urn:ietf:params:oauth:grant-type:jwt-bearer"

CLIENT_ASSERTION_TYPE_JWT_BEARER: str = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"

# ============================================================================
# Signed Assertions
# ============================================================================

ASSERTION_ALGORITHM: str = "RS256"

# Fixed validity window for client and grant assertions (4 minutes)
ASSERTION_LIFETIME_SECONDS: int = 240

# ============================================================================
# Response Formats (Accept header values)
# ============================================================================

RESPONSE_FORMAT_JSON: str = "application/json"
RESPONSE_FORMAT_URL_ENCODED: str = "application/x-www-form-urlencoded"
RESPONSE_FORMAT_XML: str = "application/xml"

FORM_CONTENT_TYPE: str = RESPONSE_FORMAT_URL_ENCODED

# ============================================================================
# Identity URL
# ============================================================================

# Salesforce record IDs are either 15 (case-sensitive) or 18 (case-insensitive) chars
SALESFORCE_ID_LENGTHS: frozenset[int] = frozenset({15, 18})

# ============================================================================
# Context Pipeline
# ============================================================================

DEFAULT_PROVIDER: str = "salesforce"

BEARER_PATTERN: re.Pattern[str] = re.compile(r"^Bearer (.+)$")

# Prefix for environment variables read by load_environment_from_env()
ENV_PREFIX: str = "OPENID_"
