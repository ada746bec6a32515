"""Viewer-scoped entities over SQLAlchemy Core with per-request batched loading."""

from .entity import Entity, TableDescriptor, make_entity
from .exceptions import (
    ConfigurationError,
    EntityViewerError,
    RowDecodeError,
    UnsupportedOperationError,
)
from .infrastructure.database.session import Database
from .query_builder import QueryBuilder
from .viewer import Viewer

__all__ = [
    "ConfigurationError",
    "Database",
    "Entity",
    "EntityViewerError",
    "QueryBuilder",
    "RowDecodeError",
    "TableDescriptor",
    "UnsupportedOperationError",
    "Viewer",
    "make_entity",
]
