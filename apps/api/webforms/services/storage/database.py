"""SQL storage: one INSERT ... RETURNING * per submission."""

from __future__ import annotations

import logging
from typing import Any

import anyio
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from webforms.core.errors import StorageError
from webforms.db.session import build_engine
from webforms.types import FieldMap

logger = logging.getLogger(__name__)


def _join_array(value: list[Any], separator: str = ",") -> str:
    return separator.join(str(item) for item in value)


class DatabaseStorage:
    """
    Insert submissions into existing tables.

    Schema management is left to operators. SQLite has no array type, so
    multiple-choice values are joined with commas (values are not escaped).
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = engine.dialect.name == "sqlite"

    @classmethod
    def from_url(cls, url: str) -> "DatabaseStorage":
        return cls(build_engine(url))

    def _build_insert(self, table: str, fields: FieldMap) -> tuple[str, dict[str, Any]]:
        quote = self.engine.dialect.identifier_preparer.quote
        if not fields:
            return f"INSERT INTO {quote(table)} DEFAULT VALUES RETURNING *", {}

        columns: list[str] = []
        placeholders: list[str] = []
        params: dict[str, Any] = {}
        for index, (name, value) in enumerate(fields.items()):
            key = f"p{index}"
            columns.append(quote(name))
            placeholders.append(f":{key}")
            if self._is_sqlite and isinstance(value, list):
                value = _join_array(value)
            params[key] = value

        sql = (
            f"INSERT INTO {quote(table)} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)}) RETURNING *"
        )
        return sql, params

    def _insert(self, table: str, fields: FieldMap) -> dict[str, Any]:
        sql, params = self._build_insert(table, fields)
        with self.engine.begin() as conn:
            row = conn.execute(text(sql), params).mappings().one()
        return dict(row)

    async def store(self, table: str, fields: FieldMap) -> dict[str, Any]:
        try:
            return await anyio.to_thread.run_sync(self._insert, table, fields)
        except SQLAlchemyError as exc:
            raise StorageError(f"insert into {table}: {exc}") from exc

    async def close(self) -> None:
        await anyio.to_thread.run_sync(self.engine.dispose)
