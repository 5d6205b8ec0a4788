"""Per-provider cache of initialized protocol clients.

Discovery is performed once per provider configuration. The cache key is the
SHA-1 hex digest of "issuer_uri|client_id|http_timeout", so Environments
differing only in secret, signing key or redirect URI share one client. The
shared client holds only the discovered endpoints and the HTTP connection;
flows pass their own Environment to every operation that needs credentials.

Concurrent first lookups for the same key share a single initialization;
a failed initialization leaves no entry behind so the next lookup retries.
"""

from __future__ import annotations

__all__ = [
    "ClientCache",
    "cache_key",
]

import asyncio
import hashlib
from collections.abc import Callable

import httpx

from sfdc_auth.client.protocol import ProtocolClient
from sfdc_auth.config import Environment
from sfdc_auth.telemetry.system_logger import get_system_logger

_logger = get_system_logger()

ClientFactory = Callable[[Environment], ProtocolClient]


def cache_key(env: Environment) -> str:
    """Return the cache key for an Environment."""
    timeout = env.http_timeout
    rendered = str(int(timeout)) if float(timeout).is_integer() else str(timeout)
    raw = f"{env.issuer_uri}|{env.client_id}|{rendered}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class ClientCache:
    """Memoizes initialized ProtocolClients by provider configuration.

    Entries never expire. The cache is owned by the application bootstrap
    and passed to flows and pipeline stages.

    Usage:
        cache = ClientCache()
        client = await cache.find_or_create(env)
        ...
        await cache.aclose()
    """

    def __init__(self, client_factory: ClientFactory = ProtocolClient) -> None:
        """Initialize an empty cache.

        Args:
            client_factory: Builds an uninitialized client for an Environment.
        """
        self._client_factory = client_factory
        self._clients: dict[str, ProtocolClient] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, key: object) -> bool:
        return key in self._clients

    async def find_or_create(self, env: Environment) -> ProtocolClient:
        """Return the initialized client for env, creating it on first use.

        Raises:
            httpx.HTTPError: If discovery fails (nothing is cached).
            ProtocolError: If the discovery document is incomplete.
        """
        key = cache_key(env)

        client = self._clients.get(key)
        if client is not None:
            return client

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # Another task may have finished initialization while we waited
            client = self._clients.get(key)
            if client is not None:
                return client

            client = self._client_factory(env)
            try:
                await client.init()
            except BaseException:
                await client.aclose()
                raise

            self._clients[key] = client
            _logger.info(
                {
                    "event": "client_cached",
                    "message": f"Cached OpenID client for {env.issuer_uri}",
                    "cache_key": key,
                }
            )
            return client

    def clear(self) -> None:
        """Forget every cached client without closing it."""
        self._clients.clear()
        self._locks.clear()

    async def aclose(self) -> None:
        """Close every cached client and empty the cache."""
        clients = list(self._clients.values())
        self.clear()
        for client in clients:
            try:
                await client.aclose()
            except httpx.HTTPError as e:
                _logger.warning(
                    {
                        "event": "client_close_failed",
                        "message": f"Failed to close OpenID client: {e}",
                    }
                )
