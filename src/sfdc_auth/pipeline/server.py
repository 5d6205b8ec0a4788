"""Server-wide configuration shared by pipeline stages."""

from __future__ import annotations

__all__ = ["ServerConfig"]

from dataclasses import dataclass, field

from sfdc_auth.client.cache import ClientCache
from sfdc_auth.config import ProviderConfig
from sfdc_auth.exceptions import ConfigurationError
from sfdc_auth.telemetry.events import EventEmitter


@dataclass
class ServerConfig:
    """Providers, client cache and event emitter of one application.

    Attributes:
        providers: Provider configuration by name (e.g. "salesforce").
        cache: Client cache shared by every stage.
        events: Emitter receiving pipeline events.
    """

    providers: dict[str, ProviderConfig]
    cache: ClientCache = field(default_factory=ClientCache)
    events: EventEmitter = field(default_factory=EventEmitter)

    def provider(self, name: str) -> ProviderConfig:
        """Look up a provider by name.

        Raises:
            ConfigurationError: If no provider is registered under name.
        """
        try:
            return self.providers[name]
        except KeyError:
            raise ConfigurationError(f"Unknown provider: {name}", field="provider") from None
