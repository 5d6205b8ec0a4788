"""Protocol client, assertion builder, identity verifier and client cache."""

from __future__ import annotations

__all__ = [
    "ClientCache",
    "ProtocolClient",
    "build_client_assertion",
    "build_grant_assertion",
    "decode_id_token",
    "parse_user_info",
    "verify_signature",
]

from sfdc_auth.client.assertion import build_client_assertion, build_grant_assertion
from sfdc_auth.client.cache import ClientCache
from sfdc_auth.client.identity import decode_id_token, parse_user_info, verify_signature
from sfdc_auth.client.protocol import ProtocolClient
