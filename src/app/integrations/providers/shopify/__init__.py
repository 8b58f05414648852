"""Shopify Admin REST provider (blog articles)."""

from src.app.integrations.providers.shopify.client import ShopifyClient
from src.app.integrations.providers.shopify.provider import (
    SHOPIFY_MAPPING_PROFILE,
    ShopifyProvider,
)

__all__ = ["SHOPIFY_MAPPING_PROFILE", "ShopifyClient", "ShopifyProvider"]
