"""Custom exception classes for the audit engine."""

from typing import Any


class MetadataAuditError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Validation Errors
class ValidationError(MetadataAuditError):
    """Data validation failed."""

    pass


class MetadataValidationError(ValidationError):
    """Listing metadata cannot be scored."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message, {"errors": errors or []})
        self.errors = errors or []


# Configuration Errors
class ConfigurationError(MetadataAuditError):
    """Base class for ruleset configuration errors."""

    pass


class RulesetConfigurationError(ConfigurationError):
    """A ruleset fragment payload is malformed."""

    def __init__(self, scope: str, selector: str | None, message: str) -> None:
        super().__init__(
            f"Invalid {scope} ruleset fragment ({selector or 'default'}): {message}",
            {"scope": scope, "selector": selector},
        )


class FragmentStoreError(ConfigurationError):
    """The fragment store could not be read."""

    def __init__(self, store_name: str, message: str) -> None:
        super().__init__(f"{store_name} fragment store error: {message}")
