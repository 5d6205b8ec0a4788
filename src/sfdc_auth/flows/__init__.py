"""Ready-to-call OAuth flows bound to an Environment and a ClientCache."""

from __future__ import annotations

__all__ = [
    "auth_code_token_grantor",
    "authorization_url_generator",
    "jwt_bearer_token_grantor",
    "refresh_token_grantor",
    "token_introspector",
    "token_revoker",
    "user_credentials_grantor",
    "userinfo_requester",
]

from sfdc_auth.flows.jwt_bearer import jwt_bearer_token_grantor, user_credentials_grantor
from sfdc_auth.flows.refresh_token import refresh_token_grantor
from sfdc_auth.flows.token import token_introspector, token_revoker, userinfo_requester
from sfdc_auth.flows.web_server import auth_code_token_grantor, authorization_url_generator
