"""WordPress REST API provider."""

from src.app.integrations.providers.wordpress.client import WordPressClient
from src.app.integrations.providers.wordpress.provider import (
    WORDPRESS_MAPPING_PROFILE,
    WordPressProvider,
)

__all__ = ["WORDPRESS_MAPPING_PROFILE", "WordPressClient", "WordPressProvider"]
