"""Metadata audit request schemas."""

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator

from metadata_audit.config import settings


class AppMetadata(BaseModel):
    """Store listing metadata to audit."""

    app_id: str | None = Field(default=None, validation_alias=AliasChoices("app_id", "appId"))
    title: str = Field(min_length=1)
    subtitle: str = ""
    description: str = ""
    category: str | None = Field(
        default=None,
        validation_alias=AliasChoices("category", "applicationCategory"),
    )
    locale: str = Field(default_factory=lambda: settings.default_locale)
    platform: Literal["ios", "android"] = Field(default_factory=lambda: settings.default_platform)
    organization_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("organization_id", "organizationId"),
    )
    vertical: str | None = None

    model_config = {"frozen": True, "populate_by_name": True, "str_strip_whitespace": True}

    @field_validator("subtitle", "description", mode="before")
    @classmethod
    def none_as_empty(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("platform", mode="before")
    @classmethod
    def normalize_platform(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class MetadataAuditRequest(AppMetadata):
    """Audit request body."""

    top_n: int | None = Field(
        default=None,
        ge=1,
        le=50,
        validation_alias=AliasChoices("top_n", "topN"),
    )


class RulesetResolveRequest(BaseModel):
    """Context for previewing a merged ruleset."""

    app_id: str | None = Field(default=None, validation_alias=AliasChoices("app_id", "appId"))
    category: str | None = Field(
        default=None,
        validation_alias=AliasChoices("category", "applicationCategory"),
    )
    locale: str = Field(default_factory=lambda: settings.default_locale)
    organization_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("organization_id", "organizationId"),
    )
    vertical: str | None = None
