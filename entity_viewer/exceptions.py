"""Errors raised by the entity layer."""

from __future__ import annotations

from pydantic import ValidationError


class EntityViewerError(RuntimeError):
    """Base class for errors raised by this layer."""


class ConfigurationError(EntityViewerError):
    """An entity type or viewer is configured incorrectly."""


class UnsupportedOperationError(EntityViewerError):
    """The requested operation is not supported by the query builder."""


class RowDecodeError(EntityViewerError):
    """A raw row could not be decoded into its entity type."""

    def __init__(self, entity_name: str, error: ValidationError) -> None:
        fields = sorted({".".join(str(p) for p in e["loc"]) for e in error.errors()})
        super().__init__(
            f"Row for {entity_name} failed validation: {', '.join(fields) or error}"
        )
        self.entity_name = entity_name
        self.fields = fields
        self.validation_error = error
