"""Submission storage backends."""

from webforms.core.config import Settings
from webforms.core.errors import FormConfigError
from webforms.services.storage.base import Storage
from webforms.services.storage.database import DatabaseStorage
from webforms.services.storage.dump import DumpStorage
from webforms.services.storage.files import FileStorage

STORAGE_TYPES = ("database", "files", "dump")


def storage_from_settings(settings: Settings) -> Storage:
    kind = settings.STORAGE.strip().lower()
    if kind in ("database", "db"):
        return DatabaseStorage.from_url(settings.DATABASE_URL)
    if kind in ("files", "file"):
        return FileStorage(settings.FILES_PATH)
    if kind == "dump":
        return DumpStorage()
    raise FormConfigError(f"unknown storage type {settings.STORAGE!r}, expected one of {', '.join(STORAGE_TYPES)}")


__all__ = [
    "DatabaseStorage",
    "DumpStorage",
    "FileStorage",
    "STORAGE_TYPES",
    "Storage",
    "storage_from_settings",
]
