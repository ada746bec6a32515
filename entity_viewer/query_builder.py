"""Chainable, entity-scoped query construction on top of SQLAlchemy Core."""

from __future__ import annotations

import asyncio
import operator
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import sqlalchemy as sa
from pydantic import BaseModel
from sqlalchemy.sql.elements import ColumnElement

from .exceptions import UnsupportedOperationError
from .logging import get_logger

if TYPE_CHECKING:
    from .entity import Entity
    from .viewer import Viewer

E = TypeVar("E", bound="Entity")

_OPERATORS: dict[str, Callable[[Any, Any], ColumnElement[bool]]] = {
    "=": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "like": lambda col, value: col.like(value),
    "ilike": lambda col, value: col.ilike(value),
    "in": lambda col, value: col.in_(value),
    "not in": lambda col, value: col.not_in(value),
}

_DIRECTIONS = {"asc": sa.asc, "desc": sa.desc}


class QueryBuilder(Generic[E]):
    """Builds and runs queries for one entity type on behalf of one viewer.

    Filter, ordering, pagination and aggregate methods change this builder and
    return it, so two references to the same builder share every filter. Use
    :meth:`clone` to fork a builder explicitly. Select terminals hydrate rows
    into entities through :meth:`Entity.from_row`, which applies ``can_see``.

    Subclass it to add domain-specific chain methods and point the entity's
    ``query_builder_class`` at the subclass.
    """

    def __init__(self, entity: type[E], viewer: Viewer) -> None:
        self.entity = entity
        self.viewer = viewer
        self.descriptor = entity.descriptor()
        self.table = self.descriptor.table
        self._clauses: list[ColumnElement[bool]] = []
        self._order: list[ColumnElement[Any]] = []
        self._projection: list[ColumnElement[Any]] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._debug = viewer.query_debug
        self._log = get_logger("query")

    # -- filters -------------------------------------------------------------

    def where(self, *args: Any, **kwargs: Any) -> QueryBuilder[E]:
        """Add criteria joined with AND.

        Accepts a mapping of column to value, keyword equality, ``(column,
        value)``, ``(column, operator, value)`` or a SQLAlchemy clause.
        """
        self._clauses.extend(self._criteria(args, kwargs))
        return self

    def where_not(self, *args: Any, **kwargs: Any) -> QueryBuilder[E]:
        """Same shapes as :meth:`where`, each criterion negated."""
        self._clauses.extend(sa.not_(c) for c in self._criteria(args, kwargs))
        return self

    def where_in(self, column: str, values: Sequence[Any]) -> QueryBuilder[E]:
        self._clauses.append(self.column(column).in_(list(values)))
        return self

    def where_not_in(self, column: str, values: Sequence[Any]) -> QueryBuilder[E]:
        self._clauses.append(self.column(column).not_in(list(values)))
        return self

    def where_between(self, column: str, bounds: Sequence[Any]) -> QueryBuilder[E]:
        if len(bounds) != 2:
            raise ValueError("where_between expects a (low, high) pair")
        low, high = bounds
        self._clauses.append(self.column(column).between(low, high))
        return self

    def order_by(self, column: str, direction: str = "asc") -> QueryBuilder[E]:
        try:
            order = _DIRECTIONS[direction.lower()]
        except KeyError as exc:
            raise ValueError(f"Unknown sort direction: {direction!r}") from exc
        self._order.append(order(self.column(column)))
        return self

    def limit(self, count: int) -> QueryBuilder[E]:
        self._limit = count
        return self

    def offset(self, count: int) -> QueryBuilder[E]:
        self._offset = count
        return self

    # -- aggregates ----------------------------------------------------------

    def count(self, column: str = "*", alias: str | None = None) -> QueryBuilder[E]:
        if column == "*":
            self._projection.append(sa.func.count().label(alias or "count"))
            return self
        return self._aggregate(sa.func.count, column, alias or "count")

    def min(self, column: str, alias: str | None = None) -> QueryBuilder[E]:
        return self._aggregate(sa.func.min, column, alias or "min")

    def max(self, column: str, alias: str | None = None) -> QueryBuilder[E]:
        return self._aggregate(sa.func.max, column, alias or "max")

    def sum(self, column: str, alias: str | None = None) -> QueryBuilder[E]:
        return self._aggregate(sa.func.sum, column, alias or "sum")

    def avg(self, column: str, alias: str | None = None) -> QueryBuilder[E]:
        return self._aggregate(sa.func.avg, column, alias or "avg")

    def count_distinct(self, column: str, alias: str | None = None) -> QueryBuilder[E]:
        return self._aggregate(sa.func.count, column, alias or "count", distinct=True)

    def sum_distinct(self, column: str, alias: str | None = None) -> QueryBuilder[E]:
        return self._aggregate(sa.func.sum, column, alias or "sum", distinct=True)

    def avg_distinct(self, column: str, alias: str | None = None) -> QueryBuilder[E]:
        return self._aggregate(sa.func.avg, column, alias or "avg", distinct=True)

    def debug(self, enabled: bool = True) -> QueryBuilder[E]:
        """Log every statement this builder executes."""
        self._debug = enabled
        return self

    def clone(self) -> QueryBuilder[E]:
        """Return an independent copy carrying the same criteria."""
        copy = type(self).__new__(type(self))
        copy.__dict__.update(self.__dict__)
        copy._clauses = list(self._clauses)
        copy._order = list(self._order)
        copy._projection = list(self._projection)
        return copy

    # -- terminals -----------------------------------------------------------

    async def get_one(self) -> E | None:
        """Return the first visible match, or ``None``."""
        self._require_entity_projection("get_one")
        self._limit = 1
        rows = await self._fetch(self._select())
        if not rows:
            return None
        return await self.entity.from_row(self.viewer, rows[0])

    async def get_all(self) -> list[E]:
        """Return every visible match in the order the backend produced.

        Rows are hydrated concurrently. Every hydration finishes before the
        first error among them is raised.
        """
        self._require_entity_projection("get_all")
        rows = await self._fetch(self._select())
        results = await asyncio.gather(
            *(self.entity.from_row(self.viewer, row) for row in rows),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return [entity for entity in results if entity is not None]

    async def get_raw(self) -> list[dict[str, Any]]:
        """Return plain rows, e.g. the result of an aggregate projection."""
        return await self._fetch(self._select())

    async def get_scalar(self) -> Any:
        """Return the first column of the first row, or ``None``."""
        rows = await self.get_raw()
        if not rows:
            return None
        return next(iter(rows[0].values()), None)

    def insert(
        self, data: Mapping[str, Any] | BaseModel, *, refetch: bool = False
    ) -> Awaitable[E | None]:
        """Insert one row and return it as an entity.

        With ``refetch`` the row is read back by its new id, so values filled
        in by the database are present. Otherwise the entity is built from
        ``data`` plus the generated id.
        """
        if isinstance(data, (list, tuple)):
            raise UnsupportedOperationError(
                "Batch insert is not supported; insert one row at a time"
            )
        return self._insert(self._values(data), refetch)

    async def update(self, patch: Mapping[str, Any] | BaseModel) -> None:
        """Update every row matching the current criteria."""
        values = self._values(patch)
        if not values:
            return
        stmt = sa.update(self.table).values(values)
        if self._clauses:
            stmt = stmt.where(*self._clauses)
        await self._execute(stmt)

    async def delete(self) -> None:
        """Delete every row matching the current criteria."""
        stmt = sa.delete(self.table)
        if self._clauses:
            stmt = stmt.where(*self._clauses)
        await self._execute(stmt)

    # -- helpers -------------------------------------------------------------

    def column(self, name: str) -> ColumnElement[Any]:
        """Resolve ``name`` against the entity's table."""
        if name in self.table.c:
            return self.table.c[name]
        return sa.column(name)

    def _criteria(
        self, args: tuple[Any, ...], kwargs: Mapping[str, Any]
    ) -> list[ColumnElement[bool]]:
        criteria: list[ColumnElement[bool]] = []
        if len(args) == 1 and isinstance(args[0], Mapping):
            criteria.extend(self.column(k) == v for k, v in args[0].items())
        elif len(args) == 1 and isinstance(args[0], ColumnElement):
            criteria.append(args[0])
        elif len(args) == 2:
            criteria.append(self.column(args[0]) == args[1])
        elif len(args) == 3:
            name, op, value = args
            try:
                compare = _OPERATORS[str(op).lower()]
            except KeyError as exc:
                raise UnsupportedOperationError(f"Unknown operator: {op!r}") from exc
            criteria.append(compare(self.column(name), value))
        elif args:
            raise TypeError(f"Unsupported where() arguments: {args!r}")
        criteria.extend(self.column(k) == v for k, v in kwargs.items())
        return criteria

    def _aggregate(
        self,
        fn: Callable[..., ColumnElement[Any]],
        column: str,
        alias: str,
        *,
        distinct: bool = False,
    ) -> QueryBuilder[E]:
        target = self.column(column)
        if distinct:
            target = target.distinct()
        self._projection.append(fn(target).label(alias))
        return self

    def _require_entity_projection(self, terminal: str) -> None:
        if self._projection:
            raise UnsupportedOperationError(
                f"{terminal}() cannot hydrate an aggregate projection; use get_raw()"
            )

    def _select(self) -> sa.Select[Any]:
        if self._projection:
            stmt = sa.select(*self._projection).select_from(self.table)
        else:
            stmt = sa.select(self.table)
        if self._clauses:
            stmt = stmt.where(*self._clauses)
        if self._order:
            stmt = stmt.order_by(*self._order)
        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        if self._offset is not None:
            stmt = stmt.offset(self._offset)
        return stmt

    def _values(self, data: Mapping[str, Any] | BaseModel) -> dict[str, Any]:
        if isinstance(data, BaseModel):
            return data.model_dump(exclude_unset=True)
        if isinstance(data, Mapping):
            return dict(data)
        raise TypeError(f"Expected a mapping of column values, got {type(data).__name__}")

    async def _insert(self, values: dict[str, Any], refetch: bool) -> E | None:
        id_column = self.descriptor.id_column
        stmt = sa.insert(self.table).values(values)
        dialect = self.viewer.database.engine.dialect
        async with self.viewer.database.connect() as conn:
            if dialect.insert_returning:
                stmt = stmt.returning(self.table.c[id_column])
                self._log_statement(stmt)
                result = await conn.execute(stmt)
                new_id = result.scalar_one()
            else:
                self._log_statement(stmt)
                result = await conn.execute(stmt)
                new_id = values.get(id_column, result.lastrowid)
        self._log.debug(
            "event=row_inserted table=%s id=%s refetch=%s",
            self.descriptor.table_name,
            new_id,
            refetch,
        )
        if refetch:
            return await self.entity.query(self.viewer).where(id_column, new_id).get_one()
        return await self.entity.from_row(self.viewer, {**values, id_column: new_id})

    async def _fetch(self, stmt: sa.Executable) -> list[dict[str, Any]]:
        self._log_statement(stmt)
        async with self.viewer.database.connect() as conn:
            result = await conn.execute(stmt)
            return [dict(row) for row in result.mappings().all()]

    async def _execute(self, stmt: sa.Executable) -> None:
        self._log_statement(stmt)
        async with self.viewer.database.connect() as conn:
            await conn.execute(stmt)

    def _log_statement(self, stmt: sa.Executable) -> None:
        if not self._debug:
            return
        compiled = stmt.compile(dialect=self.viewer.database.engine.dialect)
        self._log.info(
            "event=query_debug table=%s sql=%s params=%s",
            self.descriptor.table_name,
            str(compiled).replace("\n", " "),
            compiled.params,
        )

    def __repr__(self) -> str:
        return "{name}(table={table}, criteria={criteria}, limit={limit})".format(
            name=type(self).__name__,
            table=self.descriptor.table_name,
            criteria=len(self._clauses),
            limit=self._limit,
        )
