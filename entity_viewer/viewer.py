"""Per-request context that scopes every data access."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from aiodataloader import DataLoader
from cachetools import LRUCache

from .core.config import Settings, get_settings
from .infrastructure.database.session import Database
from .logging import get_logger
from .utils.results import map_by_keys

if TYPE_CHECKING:
    from .entity import Entity


class Viewer:
    """Identifies who or what is performing requests.

    A viewer is created once per logical request. It holds the database handle
    used by every query issued on its behalf and one batching loader per entity
    type, so lookups by id are coalesced and memoized for the viewer's lifetime.
    Loaders are never shared between viewers.
    """

    def __init__(
        self,
        database: Database,
        *,
        entities: Sequence[type[Entity]] = (),
        max_batch_size: int | None = None,
        cache_size: int | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.database = database
        self.query_debug = settings.query_debug
        self._max_batch_size = (
            max_batch_size if max_batch_size is not None else settings.loader_max_batch_size
        )
        self._cache_size = cache_size if cache_size is not None else settings.loader_cache_size
        self._loaders: dict[str, DataLoader] = {}
        self._log = get_logger("viewer")
        self.register(*entities)

    def register(self, *entity_types: type[Entity]) -> Viewer:
        """Create the loaders of ``entity_types`` up front."""
        for entity_type in entity_types:
            key = entity_type.descriptor().key
            if key not in self._loaders:
                self._loaders[key] = self._create_loader(entity_type)
                self._log.debug("event=loader_registered entity=%s lazy=false", key)
        return self

    def loader(self, entity_type: type[Entity]) -> DataLoader:
        """Return the batching loader of ``entity_type``, keyed by id string."""
        key = entity_type.descriptor().key
        loader = self._loaders.get(key)
        if loader is None:
            loader = self._create_loader(entity_type)
            self._loaders[key] = loader
            self._log.debug("event=loader_registered entity=%s lazy=true", key)
        return loader

    def has_loader(self, entity_type: type[Entity]) -> bool:
        return entity_type.descriptor().key in self._loaders

    def clear(self, entity_type: type[Entity] | None = None) -> Viewer:
        """Forget memoized lookups for one entity type, or for all of them."""
        if entity_type is None:
            for loader in self._loaders.values():
                loader.clear_all()
        else:
            loader = self._loaders.get(entity_type.descriptor().key)
            if loader is not None:
                loader.clear_all()
        return self

    def _create_loader(self, entity_type: type[Entity]) -> DataLoader:
        descriptor = entity_type.descriptor()

        async def batch_load(ids: list[str]) -> list[Any]:
            self._log.debug(
                "event=batch_load entity=%s table=%s size=%s",
                descriptor.key,
                descriptor.table_name,
                len(ids),
            )
            entities = await (
                entity_type.query(self).where_in(descriptor.id_column, list(ids)).get_all()
            )
            return map_by_keys(ids, lambda entity: entity.key, entities)

        cache_map = LRUCache(maxsize=self._cache_size) if self._cache_size else None
        return DataLoader(
            batch_load,
            max_batch_size=self._max_batch_size,
            cache_map=cache_map,
        )

    def __repr__(self) -> str:
        return "{name}(dialect={dialect}, loaders={loaders})".format(
            name=type(self).__name__,
            dialect=self.database.dialect_name,
            loaders=sorted(self._loaders),
        )
