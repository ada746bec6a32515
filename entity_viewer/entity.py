"""Base entity type: a hydrated, access-checked row of one table."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, TypeVar
from weakref import WeakKeyDictionary

import sqlalchemy as sa
from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError
from sqlalchemy.ext.hybrid import hybrid_method
from sqlalchemy.sql.expression import TableClause

from .exceptions import ConfigurationError, RowDecodeError, UnsupportedOperationError
from .logging import get_logger
from .query_builder import QueryBuilder
from .utils.results import MaybeAwaitable, maybe_await
from .viewer import Viewer

E = TypeVar("E", bound="Entity")
V = TypeVar("V", bound=Viewer)

LOG = get_logger("entity")

_DESCRIPTORS: WeakKeyDictionary[type[Entity], TableDescriptor] = WeakKeyDictionary()


@dataclass(frozen=True, slots=True)
class TableDescriptor:
    """Where an entity type lives: its table, id column and columns."""

    key: str
    table_name: str
    id_column: str
    columns: tuple[str, ...]
    table: TableClause = field(compare=False, repr=False)


def _describe(entity_type: type[Entity]) -> TableDescriptor:
    descriptor = _DESCRIPTORS.get(entity_type)
    if descriptor is None:
        descriptor = _DESCRIPTORS[entity_type] = _build_descriptor(entity_type)
    return descriptor


def _build_descriptor(entity_type: type[Entity]) -> TableDescriptor:
    name = entity_type.__name__
    table_name = entity_type.table_name
    if not table_name:
        raise ConfigurationError(f"table_name not defined on {name}")
    columns = tuple(entity_type.model_fields)
    if entity_type.id_column not in columns:
        raise ConfigurationError(
            f"id column {entity_type.id_column!r} is not a field of {name}"
        )
    return TableDescriptor(
        key=f"{entity_type.__module__}.{entity_type.__qualname__}",
        table_name=table_name,
        id_column=entity_type.id_column,
        columns=columns,
        table=sa.table(table_name, *(sa.column(c) for c in columns)),
    )


class Entity(BaseModel):
    """One row of one table, visible to the viewer that loaded it.

    Subclasses declare their columns as fields and set ``table_name``. They may
    change ``id_column``, override :meth:`can_see` (plain or ``async``), and set
    ``query_builder_class`` to a :class:`QueryBuilder` subclass with
    domain-specific chain methods.
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_assignment=True,
        coerce_numbers_to_str=True,
        ignored_types=(hybrid_method,),
    )

    table_name: ClassVar[str | None] = None
    id_column: ClassVar[str] = "id"
    query_builder_class: ClassVar[type[QueryBuilder[Any]]] = QueryBuilder
    viewer_class: ClassVar[type[Viewer]] = Viewer

    _viewer: Viewer | None = PrivateAttr(default=None)

    @classmethod
    def descriptor(cls) -> TableDescriptor:
        return _describe(cls)

    @classmethod
    async def from_row(cls: type[E], viewer: Viewer, row: Mapping[str, Any]) -> E | None:
        """Decode ``row`` and return it if the viewer may see it.

        A visible entity replaces whatever the viewer's loader memoized for
        its id, so a later :meth:`load` of the same id returns this instance.
        """
        cls._check_viewer(viewer)
        try:
            entity = cls.model_validate(dict(row))
        except ValidationError as exc:
            raise RowDecodeError(cls.__name__, exc) from exc
        entity._viewer = viewer
        if not await maybe_await(entity.can_see()):
            return None
        viewer.loader(cls).clear(entity.key).prime(entity.key, entity)
        return entity

    @classmethod
    async def load(cls: type[E], viewer: Viewer, id: Any) -> E | None:
        """Load one entity by id, batched with other loads of this viewer."""
        cls._check_viewer(viewer)
        return await viewer.loader(cls).load(str(id))

    @classmethod
    async def load_many(cls: type[E], viewer: Viewer, ids: Sequence[Any]) -> list[E | None]:
        cls._check_viewer(viewer)
        return await viewer.loader(cls).load_many([str(i) for i in ids])

    @hybrid_method
    def query(self) -> QueryBuilder[Any]:
        """Builder matching exactly this row."""
        cls = type(self)
        return cls.query(self.viewer).where(cls.id_column, self.key)

    @query.expression
    def query(cls, viewer: Viewer) -> QueryBuilder[Any]:
        """Fresh builder for this entity type."""
        cls._check_viewer(viewer)
        return cls.query_builder_class(cls, viewer)

    def can_see(self) -> MaybeAwaitable[bool]:
        """Whether the bound viewer may see this row. May be ``async``."""
        return True

    @property
    def viewer(self) -> Viewer:
        if self._viewer is None:
            raise ConfigurationError(f"{type(self).__name__} is not bound to a viewer")
        return self._viewer

    @property
    def key(self) -> str:
        """The primary key as a string."""
        return str(getattr(self, type(self).id_column))

    async def update(self: E, patch: Mapping[str, Any] | None = None, /, **fields: Any) -> E:
        """Assign ``patch`` to this entity and write it to its row.

        The assignment is reverted if the write fails.
        """
        values = {**(patch or {}), **fields}
        id_column = type(self).id_column
        if id_column in values and str(values[id_column]) != self.key:
            raise UnsupportedOperationError(
                f"Changing {id_column!r} of {type(self).__name__} is not supported"
            )
        fields_of = type(self).model_fields
        unknown = sorted(name for name in values if name not in fields_of)
        if unknown:
            raise UnsupportedOperationError(
                f"{type(self).__name__} has no column(s) {', '.join(unknown)}"
            )
        previous = {name: getattr(self, name) for name in values}
        try:
            for name, value in values.items():
                setattr(self, name, value)
            await self.query().update(self.model_dump(include=set(values)))
        except Exception:
            for name, value in previous.items():
                setattr(self, name, value)
            raise
        return self

    async def delete(self) -> None:
        """Delete this row and forget it in the viewer's loader."""
        await self.query().delete()
        self.viewer.loader(type(self)).clear(self.key)
        LOG.debug("event=entity_evicted entity=%s id=%s", self.descriptor().key, self.key)

    @classmethod
    def _check_viewer(cls, viewer: Viewer) -> None:
        if not isinstance(viewer, cls.viewer_class):
            raise ConfigurationError(
                f"{cls.__name__} expects a {cls.viewer_class.__name__}, "
                f"got {type(viewer).__name__}"
            )


def make_entity(viewer_cls: type[V]) -> type[Entity]:
    """Return a base entity class bound to ``viewer_cls``.

    Entities derived from it only accept viewers of that type, and can rely on
    the attributes ``viewer_cls`` adds.
    """

    class BoundEntity(Entity):
        viewer_class = viewer_cls

    BoundEntity.__name__ = BoundEntity.__qualname__ = f"{viewer_cls.__name__}Entity"
    return BoundEntity
