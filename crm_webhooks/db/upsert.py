"""Dialect-aware ``INSERT ... ON CONFLICT`` construction."""

from typing import Any

from sqlalchemy.dialects.postgresql import Insert as PostgresInsert
from sqlalchemy.dialects.postgresql import insert as postgres_insert
from sqlalchemy.dialects.sqlite import Insert as SQLiteInsert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(db_session: AsyncSession, model: Any) -> PostgresInsert | SQLiteInsert:
    """Return an insert construct supporting ``on_conflict_*`` for the bound dialect.

    Raises:
        NotImplementedError: For backends without ``ON CONFLICT`` support.
    """
    dialect_name = db_session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgres_insert(model)
    if dialect_name == "sqlite":
        return sqlite_insert(model)
    raise NotImplementedError(f"Upserts are not supported on dialect '{dialect_name}'")
