"""Content publishing integrations.

Provides the provider contract, the registry of platform providers, field
mapping resolution, the transform engine, drift checking and the
publishing service that ties them to persistence.

Exports:
    BaseIntegrationProvider: Abstract provider contract.
    ProviderRegistry: Platform -> provider lookup, built at startup.
    create_default_registry: Registry with all bundled providers.
    FieldMappingResolver: Ordered mapping resolution against a live schema.
    IntegrationError: Root of the typed error hierarchy.
"""

from src.app.integrations.base import BaseIntegrationProvider
from src.app.integrations.errors import IntegrationError
from src.app.integrations.mapping import FieldMappingResolver
from src.app.integrations.registry import ProviderRegistry, create_default_registry

__all__ = [
    "BaseIntegrationProvider",
    "FieldMappingResolver",
    "IntegrationError",
    "ProviderRegistry",
    "create_default_registry",
]
