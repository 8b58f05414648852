"""Typed connection configuration per platform.

ConnectionConfig is a tagged union discriminated on ``platform``. Each variant
declares its typed fields; any additional keys are collected into ``extras``
rather than rejected, so provider-specific settings can travel without a
schema change. Secrets are SecretStr and never render in reprs or logs.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from src.app.integrations.errors import ConfigValidationError


class _ConnectionConfigBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    extras: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_extras(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known: set[str] = {"platform", "extras"}
        for name, info in cls.model_fields.items():
            known.add(name)
            if info.alias:
                known.add(info.alias)
            if isinstance(info.validation_alias, AliasChoices):
                known.update(str(c) for c in info.validation_alias.choices)
        extras = dict(data.get("extras") or {})
        cleaned = {}
        for key, value in data.items():
            if key in known:
                cleaned[key] = value
            else:
                extras[key] = value
        cleaned["extras"] = extras
        return cleaned

    def plain_dict(self) -> dict[str, Any]:
        """Dump with secrets revealed. Only for encryption and outbound calls."""
        data: dict[str, Any] = {}
        for name in type(self).model_fields:
            value = getattr(self, name)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            data[name] = value
        return data


class WebflowConnectionConfig(_ConnectionConfigBase):
    platform: Literal["webflow"] = "webflow"
    api_token: SecretStr = Field(validation_alias=AliasChoices("api_token", "apiToken"))
    site_id: str | None = Field(default=None, validation_alias=AliasChoices("site_id", "siteId"))
    collection_id: str | None = Field(
        default=None, validation_alias=AliasChoices("collection_id", "collectionId")
    )


class WordPressConnectionConfig(_ConnectionConfigBase):
    platform: Literal["wordpress"] = "wordpress"
    base_url: str = Field(validation_alias=AliasChoices("base_url", "siteUrl", "site_url"))
    username: str
    application_password: SecretStr = Field(
        validation_alias=AliasChoices("application_password", "applicationPassword")
    )
    post_status: Literal["publish", "draft", "pending", "private"] = "publish"


class ShopifyConnectionConfig(_ConnectionConfigBase):
    platform: Literal["shopify"] = "shopify"
    shop_domain: str = Field(validation_alias=AliasChoices("shop_domain", "shopDomain", "shop"))
    access_token: SecretStr = Field(validation_alias=AliasChoices("access_token", "accessToken"))
    blog_id: str | None = Field(default=None, validation_alias=AliasChoices("blog_id", "blogId"))
    api_version: str | None = None


ConnectionConfig = Annotated[
    Union[WebflowConnectionConfig, WordPressConnectionConfig, ShopifyConnectionConfig],
    Field(discriminator="platform"),
]

_adapter: TypeAdapter[ConnectionConfig] = TypeAdapter(ConnectionConfig)


def parse_connection_config(platform: str, raw: dict[str, Any]) -> ConnectionConfig:
    """Build the typed config variant for ``platform`` from a raw mapping.

    Raises:
        ConfigValidationError: One entry per offending key.
    """
    data = dict(raw)
    data["platform"] = platform
    try:
        return _adapter.validate_python(data)
    except ValidationError as exc:
        errors: dict[str, str] = {}
        for err in exc.errors():
            loc = [str(p) for p in err["loc"] if p != platform]
            key = loc[-1] if loc else "config"
            errors.setdefault(key, err["msg"])
        raise ConfigValidationError(errors) from exc
