"""Dump storage: prints submissions to stdout. Useful for development."""

from __future__ import annotations

import sys
from typing import Any, TextIO

from webforms.services.template_service import to_json
from webforms.types import FieldMap


class DumpStorage:
    def __init__(self, stream: TextIO | None = None):
        self.stream = stream

    async def store(self, table: str, fields: FieldMap) -> dict[str, Any]:
        stream = self.stream or sys.stdout
        stream.write(to_json({"table": table, "fields": fields}) + "\n")
        stream.flush()
        return dict(fields)

    async def close(self) -> None:
        return None
