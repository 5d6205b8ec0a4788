"""Shared fixtures: signing keys, a provider Environment and a fake provider."""

from __future__ import annotations

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from fakes import CLIENT_ID, CLIENT_SECRET, ISSUER, REDIRECT_URI, FakeProvider
from sfdc_auth.client.cache import ClientCache
from sfdc_auth.client.protocol import ProtocolClient
from sfdc_auth.config import Environment


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """RSA key used to sign assertions."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def signing_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    """PEM encoding of rsa_private_key."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    """PEM encoding of the public half of rsa_private_key."""
    return (
        rsa_private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("ascii")
    )


@pytest.fixture
def env(signing_key_pem: str) -> Environment:
    """Valid provider environment."""
    return Environment(
        issuer_uri=ISSUER,
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        jwt_signing_key=signing_key_pem,
        http_timeout=4.001,
        redirect_uri=REDIRECT_URI,
    )


@pytest.fixture
def provider() -> FakeProvider:
    """Fake provider serving the discovery document."""
    return FakeProvider()


@pytest.fixture
def http_client(provider: FakeProvider) -> httpx.AsyncClient:
    """httpx client routed to the fake provider."""
    return httpx.AsyncClient(transport=provider.transport)


@pytest.fixture
def protocol_client(env: Environment, http_client: httpx.AsyncClient) -> ProtocolClient:
    """Uninitialized protocol client talking to the fake provider."""
    return ProtocolClient(env, http_client=http_client)


@pytest.fixture
def cache(http_client: httpx.AsyncClient) -> ClientCache:
    """Client cache whose protocol clients talk to the fake provider."""
    return ClientCache(client_factory=lambda env: ProtocolClient(env, http_client=http_client))
