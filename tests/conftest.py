"""Shared fixtures: a seeded SQLite database and viewers bound to it."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from sqlalchemy import event, insert

from entity_viewer import Database
from entity_viewer.core.config import Settings

from .entities import AppViewer
from .schema import MESSAGES, NOTES, USERS, Base, MessageRecord, NoteRecord, UserRecord


class StatementCounter:
    """Records every statement the engine sends to the driver."""

    def __init__(self) -> None:
        self.statements: list[str] = []

    def __call__(self, conn, cursor, statement, parameters, context, executemany) -> None:
        self.statements.append(" ".join(statement.split()))

    def matching(self, verb: str, table: str) -> list[str]:
        verb = verb.upper()
        return [
            s
            for s in self.statements
            if s.upper().startswith(verb) and f" {table}" in s
        ]

    def reset(self) -> None:
        self.statements.clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
async def database(tmp_path) -> AsyncIterator[Database]:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'entities.db'}")
    await db.init_models(Base.metadata)
    async with db.connect() as conn:
        await conn.execute(insert(UserRecord.__table__), USERS)
        await conn.execute(insert(MessageRecord.__table__), MESSAGES)
        await conn.execute(insert(NoteRecord.__table__), NOTES)
    yield db
    await db.aclose()


@pytest.fixture
def counter(database: Database) -> StatementCounter:
    recorder = StatementCounter()
    event.listen(database.engine.sync_engine, "before_cursor_execute", recorder)
    return recorder


@pytest.fixture
async def viewer(database: Database, settings: Settings) -> AppViewer:
    return AppViewer(database, user_id="1", settings=settings)
