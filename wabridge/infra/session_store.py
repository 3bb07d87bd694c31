"""Session directory holding the waton auth-state database."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from waton.infra.storage_sqlite import SQLiteStorage

logger = logging.getLogger(__name__)

AUTH_DB_NAME = "auth.db"


class SessionStore:
    """Owns the on-disk session directory.

    Credentials, signal sessions and pre-keys live in a single SQLite file
    managed by :class:`waton.infra.storage_sqlite.SQLiteStorage`. Wiping the
    directory discards the linked device for good.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    @property
    def db_path(self) -> Path:
        return self.directory / AUTH_DB_NAME

    def ensure(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def has_credentials(self) -> bool:
        return self.db_path.is_file()

    def open_storage(self) -> SQLiteStorage:
        self.ensure()
        return SQLiteStorage(str(self.db_path))

    def reset(self) -> None:
        if self.directory.exists():
            shutil.rmtree(self.directory)
        self.ensure()
        logger.info("session directory reset: %s", self.directory)
