"""Provider configuration for sfdc-auth.

Defines the immutable Environment consumed by the protocol client and the
per-provider configuration consumed by the context pipeline. An Environment is
validated once at construction and never mutated afterwards.

Example usage:
    # From a mapping (e.g. parsed settings)
    env = Environment.from_mapping({"issuer_uri": "...", "client_id": "...", ...})

    # From OPENID_* environment variables
    env = load_environment_from_env()

    # From a JSON file
    env = load_environment_from_file(Path("provider.json"))
"""

from __future__ import annotations

__all__ = [
    "Environment",
    "ProviderConfig",
    "load_environment_from_env",
    "load_environment_from_file",
    "validate_environment",
]

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from sfdc_auth.constants import DEFAULT_HTTP_TIMEOUT_SECONDS, ENV_PREFIX
from sfdc_auth.exceptions import ConfigurationError
from sfdc_auth.models import (
    GrantOptions,
    IntrospectionOptions,
    UserInfoOptions,
)

# Environment variable suffixes read by load_environment_from_env(), per field
_ENV_FIELDS: dict[str, str] = {
    "issuer_uri": "ISSUER_URI",
    "client_id": "CLIENT_ID",
    "client_secret": "CLIENT_SECRET",
    "jwt_signing_key": "JWT_SIGNING_KEY",
    "http_timeout": "HTTP_TIMEOUT",
    "redirect_uri": "REDIRECT_URI",
}

# Human-readable kind used in "Missing required <kind> parameter" messages
_FIELD_KINDS: dict[str, str] = {
    "http_timeout": "number",
}


# =============================================================================
# Environment
# =============================================================================


class Environment(BaseModel):
    """Immutable provider configuration.

    Attributes:
        issuer_uri: OIDC issuer (e.g. "https://login.salesforce.com/").
        client_id: Connected app consumer key.
        client_secret: Connected app consumer secret. Needed for signature
            verification, introspection and secret-based client authentication.
        jwt_signing_key: PEM-encoded RSA private key used to sign assertions.
        http_timeout: Per-request HTTP timeout in seconds.
        redirect_uri: Callback URL registered with the provider.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    issuer_uri: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    client_secret: str | None = Field(default=None, min_length=1, repr=False)
    jwt_signing_key: str = Field(min_length=1, repr=False)
    http_timeout: float = Field(default=DEFAULT_HTTP_TIMEOUT_SECONDS, gt=0)
    redirect_uri: str | None = Field(default=None, min_length=1)

    @model_validator(mode="wrap")
    @classmethod
    def _raise_configuration_error(cls, data: Any, handler: Any) -> "Environment":
        """Report invalid fields as ConfigurationError, however the model is built."""
        try:
            return handler(data)
        except ValidationError as e:
            raise _to_configuration_error(e) from e

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Environment":
        """Build and validate an Environment from a plain mapping.

        Args:
            data: Field values keyed by field name.

        Returns:
            Validated Environment.

        Raises:
            ConfigurationError: Naming the first missing or invalid field.
        """
        return cls.model_validate(dict(data))


def validate_environment(env: Environment | Mapping[str, Any] | None) -> Environment:
    """Validate an Environment supplied by an external loader.

    Accepts an already-built Environment (returned as-is) or a mapping.

    Args:
        env: Environment instance, mapping of fields, or None.

    Returns:
        Validated Environment.

    Raises:
        ConfigurationError: If env is None or a field is missing/invalid.
    """
    if env is None:
        raise ConfigurationError("Missing required object parameter: env")
    if isinstance(env, Environment):
        return env
    if isinstance(env, Mapping):
        return Environment.from_mapping(env)
    raise ConfigurationError(f"Invalid parameter: env must be a mapping, got {type(env).__name__}")


def _to_configuration_error(error: ValidationError) -> ConfigurationError:
    """Convert the first pydantic error into a field-naming ConfigurationError."""
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "env"
    error_type = first["type"]

    if error_type == "missing":
        kind = _FIELD_KINDS.get(field, "string")
        message = f"Missing required {kind} parameter: {field}"
    elif error_type == "string_too_short":
        message = f"Invalid parameter: {field} cannot be empty"
    elif error_type in ("float_parsing", "float_type"):
        message = f"Invalid parameter: {field} is not a number"
    elif error_type == "greater_than":
        message = f"Invalid parameter: {field} must be greater than 0"
    elif error_type == "extra_forbidden":
        message = f"Unknown parameter: {field}"
    else:
        message = f"Invalid parameter: {field} ({first['msg']})"

    return ConfigurationError(message, field=field)


# =============================================================================
# Loaders
# =============================================================================


def load_environment_from_env(
    prefix: str = ENV_PREFIX,
    environ: Mapping[str, str] | None = None,
) -> Environment:
    """Load an Environment from process environment variables.

    Reads {prefix}ISSUER_URI, {prefix}CLIENT_ID, {prefix}CLIENT_SECRET,
    {prefix}JWT_SIGNING_KEY, {prefix}HTTP_TIMEOUT and {prefix}REDIRECT_URI.
    Unset variables are omitted so that defaults and "missing" errors apply.

    Args:
        prefix: Variable name prefix (default "OPENID_").
        environ: Source mapping (default os.environ).

    Returns:
        Validated Environment.

    Raises:
        ConfigurationError: If a required variable is missing or invalid.
    """
    source = os.environ if environ is None else environ
    data = {
        field: source[f"{prefix}{suffix}"]
        for field, suffix in _ENV_FIELDS.items()
        if f"{prefix}{suffix}" in source
    }
    return Environment.from_mapping(data)


def load_environment_from_file(path: Path) -> Environment:
    """Load an Environment from a JSON file.

    Args:
        path: Path to a JSON object with Environment fields.

    Returns:
        Validated Environment.

    Raises:
        ConfigurationError: If the file is missing, not a JSON object, or invalid.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in configuration file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a JSON object")

    return Environment.from_mapping(data)


# =============================================================================
# Per-provider pipeline configuration
# =============================================================================


class ProviderConfig(BaseModel):
    """Configuration of one named provider used by the context pipeline.

    Attributes:
        environment: Provider Environment.
        grant_options: Defaults for grants made by pipeline stages.
        introspection_options: Defaults for token introspection.
        userinfo_options: Defaults for userinfo requests.
        set_token_on_context: Store the raw access token on the AuthContext
            after the authorization-code callback.
    """

    model_config = ConfigDict(frozen=True)

    environment: Environment
    grant_options: GrantOptions = Field(default_factory=GrantOptions)
    introspection_options: IntrospectionOptions = Field(default_factory=IntrospectionOptions)
    userinfo_options: UserInfoOptions = Field(default_factory=UserInfoOptions)
    set_token_on_context: bool = False
