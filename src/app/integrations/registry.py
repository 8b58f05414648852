"""Provider registry -- platform identifier to provider instance.

The ProviderRegistry is constructed once at startup (create_default_registry)
and handed to the publishing service and the HTTP layer through app.state.
It supports:
- Registration of a provider factory per platform (re-registration
  overwrites with a warning and drops any cached instance)
- Lazy construction: the factory runs on the first get() and the instance
  is cached for the registry's lifetime
- Listing of providers with their declared config fields

Provider instances hold no tenant credentials, so one instance per platform
is shared by every request.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import structlog

from src.app.config import Settings
from src.app.integrations.base import BaseIntegrationProvider
from src.app.integrations.errors import UnknownProviderError
from src.app.integrations.mapping import FieldMappingResolver
from src.app.integrations.providers.shopify import ShopifyProvider
from src.app.integrations.providers.webflow import WebflowProvider
from src.app.integrations.providers.wordpress import WordPressProvider
from src.app.integrations.retry import BackoffPolicy
from src.app.integrations.schemas import Platform

logger = structlog.get_logger(__name__)

ProviderFactory = Callable[[], BaseIntegrationProvider]


def _platform_key(platform: Platform | str) -> str:
    return platform.value if isinstance(platform, Platform) else str(platform).lower()


class ProviderRegistry:
    """Registry of content platform providers.

    Single event loop use only; registration happens before requests are
    served.
    """

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}
        self._instances: dict[str, BaseIntegrationProvider] = {}

    def register(self, platform: Platform | str, factory: ProviderFactory) -> None:
        """Register a provider factory for a platform.

        Args:
            platform: Platform identifier.
            factory: Zero-argument callable returning the provider.
        """
        key = _platform_key(platform)
        if key in self._factories:
            logger.warning("provider_registry.overwrite", platform=key)
            self._instances.pop(key, None)
        self._factories[key] = factory
        logger.info("provider_registry.registered", platform=key)

    def get(self, platform: Platform | str) -> BaseIntegrationProvider:
        """Get the provider for a platform, constructing it on first use.

        Raises:
            UnknownProviderError: If no factory is registered for the platform.
        """
        key = _platform_key(platform)
        instance = self._instances.get(key)
        if instance is not None:
            return instance

        factory = self._factories.get(key)
        if factory is None:
            raise UnknownProviderError(key)
        instance = factory()
        self._instances[key] = instance
        logger.debug("provider_registry.instantiated", platform=key, provider=type(instance).__name__)
        return instance

    def platforms(self) -> list[str]:
        return list(self._factories)

    def describe_all(self) -> list[dict[str, Any]]:
        """Provider listing with config field declarations (instantiates lazily)."""
        return [self.get(key).describe() for key in self._factories]

    def __len__(self) -> int:
        return len(self._factories)

    def __contains__(self, platform: object) -> bool:
        if not isinstance(platform, (Platform, str)):
            return False
        return _platform_key(platform) in self._factories


def create_default_registry(
    settings: Settings,
    resolver: FieldMappingResolver | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderRegistry:
    """Registry with the Webflow, WordPress and Shopify providers.

    Args:
        settings: Application settings (timeouts, retry policy, API roots).
        resolver: Mapping resolver shared by every provider.
        transport: Optional httpx transport passed to every provider (tests).
    """
    policy = BackoffPolicy.from_settings(settings)
    common: dict[str, Any] = {
        "read_timeout": settings.PLATFORM_READ_TIMEOUT,
        "mutate_timeout": settings.PLATFORM_MUTATE_TIMEOUT,
        "transport": transport,
        "resolver": resolver,
        "retry_policy": policy,
    }

    registry = ProviderRegistry()
    registry.register(
        Platform.WEBFLOW,
        lambda: WebflowProvider(base_url=settings.WEBFLOW_API_BASE_URL, **common),
    )
    registry.register(Platform.WORDPRESS, lambda: WordPressProvider(**common))
    registry.register(
        Platform.SHOPIFY,
        lambda: ShopifyProvider(api_version=settings.SHOPIFY_API_VERSION, **common),
    )
    return registry
