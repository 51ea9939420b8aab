"""Storage backend interface."""

from __future__ import annotations

from typing import Any, Protocol

from webforms.types import FieldMap


class Storage(Protocol):
    async def store(self, table: str, fields: FieldMap) -> dict[str, Any]:
        """Persist one submission and return the stored record."""

    async def close(self) -> None:
        """Release backend resources."""
