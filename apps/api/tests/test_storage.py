import io
import json
from datetime import date

import pytest
from sqlalchemy import text

from webforms.core.config import Settings
from webforms.core.errors import FormConfigError, StorageError
from webforms.services.storage import (
    DatabaseStorage,
    DumpStorage,
    FileStorage,
    storage_from_settings,
)


# =============================================================================
# Files
# =============================================================================

@pytest.mark.asyncio
async def test_file_storage_writes_one_document_per_submission(tmp_path):
    storage = FileStorage(tmp_path)

    first = await storage.store("feedback", {"name": "Ann", "tags": ["a", "b"], "on": date(2024, 3, 1)})
    second = await storage.store("feedback", {"name": "Bob"})

    assert first["ID"] != second["ID"]
    assert first["on"] == "2024-03-01"
    document = tmp_path / "feedback" / f"{first['ID']}.json"
    assert json.loads(document.read_text(encoding="utf-8")) == first
    assert sorted(p.name for p in (tmp_path / "feedback").iterdir()) == sorted(
        [f"{first['ID']}.json", f"{second['ID']}.json"]
    )


@pytest.mark.asyncio
async def test_file_storage_reports_write_failures(tmp_path):
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory", encoding="utf-8")
    storage = FileStorage(blocker)

    with pytest.raises(StorageError):
        await storage.store("feedback", {"name": "Ann"})


# =============================================================================
# Dump
# =============================================================================

@pytest.mark.asyncio
async def test_dump_storage_prints_and_echoes_fields():
    stream = io.StringIO()
    storage = DumpStorage(stream)

    result = await storage.store("feedback", {"name": "Ann", "year": 2024})

    assert result == {"name": "Ann", "year": 2024}
    assert json.loads(stream.getvalue()) == {"table": "feedback", "fields": {"name": "Ann", "year": 2024}}


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
async def database(tmp_path):
    storage = DatabaseStorage.from_url(f"sqlite:///{tmp_path / 'forms.sqlite'}")
    with storage.engine.begin() as conn:
        conn.execute(
            text(
                'CREATE TABLE feedback (id INTEGER PRIMARY KEY AUTOINCREMENT, '
                'name TEXT, year INTEGER, tags TEXT, "created" TEXT DEFAULT CURRENT_TIMESTAMP)'
            )
        )
    yield storage
    await storage.close()


@pytest.mark.asyncio
async def test_database_storage_returns_inserted_row(database):
    result = await database.store("feedback", {"name": "Ann", "year": 2024})

    assert result["id"] == 1
    assert result["name"] == "Ann"
    assert result["year"] == 2024
    assert result["created"]


@pytest.mark.asyncio
async def test_database_storage_joins_lists_on_sqlite(database):
    result = await database.store("feedback", {"name": "Ann", "tags": ["a", "b"]})

    assert result["tags"] == "a,b"


@pytest.mark.asyncio
async def test_database_storage_inserts_defaults_for_empty_submission(database):
    result = await database.store("feedback", {})

    assert result["id"] == 1
    assert result["name"] is None


@pytest.mark.asyncio
async def test_database_storage_quotes_identifiers(database):
    with database.engine.begin() as conn:
        conn.execute(text('CREATE TABLE "order" ("select" TEXT)'))

    result = await database.store("order", {"select": "x"})

    assert result == {"select": "x"}


@pytest.mark.asyncio
async def test_database_storage_missing_table_fails(database):
    with pytest.raises(StorageError, match="missing"):
        await database.store("missing", {"name": "Ann"})


@pytest.mark.asyncio
async def test_database_storage_unknown_column_fails(database):
    with pytest.raises(StorageError):
        await database.store("feedback", {"nope": "x"})


# =============================================================================
# Settings
# =============================================================================

def test_storage_from_settings(tmp_path):
    assert isinstance(storage_from_settings(Settings(STORAGE="dump")), DumpStorage)
    assert isinstance(storage_from_settings(Settings(STORAGE="files", FILES_PATH=str(tmp_path))), FileStorage)
    database = storage_from_settings(Settings(STORAGE="db", DATABASE_URL=f"sqlite:///{tmp_path / 'x.sqlite'}"))
    assert isinstance(database, DatabaseStorage)
    database.engine.dispose()

    with pytest.raises(FormConfigError):
        storage_from_settings(Settings(STORAGE="redis"))
