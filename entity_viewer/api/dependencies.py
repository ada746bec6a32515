"""FastAPI wiring: one database per application, one viewer per request."""

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Generic, TypeVar

from fastapi import FastAPI, Request

from ..core.config import get_settings
from ..exceptions import ConfigurationError
from ..infrastructure.database.session import Database
from ..logging import configure_logging, get_logger
from ..viewer import Viewer

if TYPE_CHECKING:
    from ..entity import Entity

LOG = get_logger("api")

V = TypeVar("V", bound=Viewer)


@asynccontextmanager
async def database_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the shared database on startup and dispose of it on shutdown."""
    settings = get_settings()
    configure_logging(level=settings.log_level)
    database = Database.from_settings(settings)
    app.state.database = database
    LOG.info("event=lifespan_init dialect=%s", database.dialect_name)
    try:
        yield
    finally:
        await database.aclose()
        LOG.info("event=resource_cleanup status=success")


def get_database(request: Request) -> Database:
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise ConfigurationError("Database is not initialised on app.state")
    return database


class ViewerDependency(Generic[V]):
    """Dependency that builds a fresh viewer for every request.

    Override :meth:`build` to pass request-specific data, such as the
    authenticated user id, to a custom viewer class.
    """

    def __init__(
        self,
        viewer_class: type[V] = Viewer,  # type: ignore[assignment]
        *,
        entities: Sequence[type["Entity"]] = (),
    ) -> None:
        self.viewer_class = viewer_class
        self.entities = tuple(entities)

    def build(self, database: Database, request: Request) -> V:
        return self.viewer_class(database, entities=self.entities)

    async def __call__(self, request: Request) -> V:
        viewer = self.build(get_database(request), request)
        LOG.debug(
            "event=viewer_created path=%s viewer=%s",
            request.url.path,
            type(viewer).__name__,
        )
        return viewer
