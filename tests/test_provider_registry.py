"""Tests for the provider registry and the shared provider contract.

Covers registration, lazy construction and caching, overwrite, unknown
platforms, the default registry, provider descriptions and accumulated
config validation.
"""

from __future__ import annotations

import pytest

from src.app.config import Settings
from src.app.integrations.errors import UnknownProviderError
from src.app.integrations.providers.webflow import WebflowProvider
from src.app.integrations.providers.wordpress import WordPressProvider
from src.app.integrations.registry import ProviderRegistry, create_default_registry
from src.app.integrations.schemas import Platform


class CountingFactory:
    def __init__(self, provider_cls=WebflowProvider) -> None:
        self.provider_cls = provider_cls
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.provider_cls()


# ── Registration ─────────────────────────────────────────────────────────────


class TestRegistry:
    def test_get_constructs_lazily_and_caches(self):
        registry = ProviderRegistry()
        factory = CountingFactory()
        registry.register(Platform.WEBFLOW, factory)

        assert factory.calls == 0
        first = registry.get(Platform.WEBFLOW)
        second = registry.get("webflow")

        assert first is second
        assert factory.calls == 1

    def test_reregistration_overwrites_cached_instance(self):
        registry = ProviderRegistry()
        registry.register(Platform.WEBFLOW, CountingFactory())
        original = registry.get(Platform.WEBFLOW)

        registry.register(Platform.WEBFLOW, CountingFactory(WordPressProvider))

        assert registry.get(Platform.WEBFLOW) is not original
        assert isinstance(registry.get(Platform.WEBFLOW), WordPressProvider)
        assert len(registry) == 1

    def test_unknown_platform_raises(self):
        registry = ProviderRegistry()

        with pytest.raises(UnknownProviderError) as exc_info:
            registry.get("ghost")

        assert exc_info.value.error_code == "UNKNOWN_PROVIDER"
        assert "ghost" in exc_info.value.message

    def test_membership_accepts_enum_and_string(self):
        registry = ProviderRegistry()
        registry.register(Platform.WEBFLOW, CountingFactory())

        assert Platform.WEBFLOW in registry
        assert "WEBFLOW" in registry
        assert "shopify" not in registry
        assert 42 not in registry


# ── Default registry ─────────────────────────────────────────────────────────


class TestDefaultRegistry:
    def test_all_platforms_registered(self):
        registry = create_default_registry(Settings())
        assert registry.platforms() == ["webflow", "wordpress", "shopify"]

    def test_describe_all(self):
        descriptions = {d["platform"]: d for d in create_default_registry(Settings()).describe_all()}

        assert descriptions["webflow"]["display_name"] == "Webflow"
        assert descriptions["webflow"]["supports_site_publish"] is True
        assert descriptions["wordpress"]["supports_site_publish"] is False
        assert descriptions["shopify"]["supports_site_publish"] is False
        shopify_keys = [f["key"] for f in descriptions["shopify"]["config_fields"]]
        assert shopify_keys[:2] == ["shop_domain", "access_token"]


# ── Config validation ────────────────────────────────────────────────────────


class TestValidateConfig:
    def test_valid_config(self, webflow_config):
        assert WebflowProvider().validate_config(webflow_config).valid is True

    def test_errors_are_accumulated(self):
        result = WebflowProvider().validate_config({"api_token": "short", "site_id": "not-an-id"})

        assert result.valid is False
        assert result.errors == {
            "api_token": "API Token must be at least 20 characters",
            "collection_id": "Collection ID is required",
            "site_id": "Site ID format is invalid",
        }

    def test_blank_required_value_counts_as_missing(self, webflow_config):
        result = WebflowProvider().validate_config({**webflow_config, "api_token": "   "})
        assert result.errors == {"api_token": "API Token is required"}
