"""File storage: one JSON document per submission."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Any

import anyio

from webforms.core.errors import StorageError
from webforms.services.template_service import to_json
from webforms.types import FieldMap

logger = logging.getLogger(__name__)

ID_KEY = "ID"


class FileStorage:
    """
    Stores each submission as ``<root>/<table>/<id>.json``.

    The result contains every submitted field plus ``ID`` (the file name
    without extension). Table names are used as directory names verbatim.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _write(self, table: str, fields: FieldMap) -> dict[str, Any]:
        record_id = uuid.uuid4().hex
        directory = self.root / table
        directory.mkdir(mode=0o750, parents=True, exist_ok=True)

        data: dict[str, Any] = dict(fields)
        data[ID_KEY] = record_id
        document = to_json(data)

        fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(document)
            os.replace(tmp_name, directory / f"{record_id}.json")
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        # Round-trip so results match what a reader of the file sees
        return json.loads(document)

    async def store(self, table: str, fields: FieldMap) -> dict[str, Any]:
        try:
            return await anyio.to_thread.run_sync(self._write, table, fields)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"write {table} document: {exc}") from exc

    async def close(self) -> None:
        return None
