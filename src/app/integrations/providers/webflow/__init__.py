"""Webflow Data API v2 provider.

Exports:
    WebflowProvider: BaseIntegrationProvider implementation.
    WebflowClient: Async HTTP client for sites, collections and items.
    WebflowSchemaClient: Schema introspection and site auto-detection.
    WebflowPublisher: Two-phase create + site publish.
    WEBFLOW_MAPPING_PROFILE: Auto-detect aliases and default mappings.
"""

from src.app.integrations.providers.webflow.client import WebflowClient
from src.app.integrations.providers.webflow.field_mapping import WEBFLOW_MAPPING_PROFILE
from src.app.integrations.providers.webflow.provider import WebflowProvider
from src.app.integrations.providers.webflow.publisher import WebflowPublisher
from src.app.integrations.providers.webflow.schema import WebflowSchemaClient

__all__ = [
    "WEBFLOW_MAPPING_PROFILE",
    "WebflowClient",
    "WebflowProvider",
    "WebflowPublisher",
    "WebflowSchemaClient",
]
