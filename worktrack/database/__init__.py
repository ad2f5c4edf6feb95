"""Database package - async SQLite document store with mixin-based composition.

Consumers import ``from database import db, DatabaseError``.
"""
import os
from pathlib import Path

from config import DB_PATH_ENV, DEFAULT_DB_FILENAME

_DEFAULT_DB_PATH = Path(os.getenv(DB_PATH_ENV, "") or DEFAULT_DB_FILENAME)
DB_PATH: Path = _DEFAULT_DB_PATH

from database.helpers import (  # noqa: E402
    DatabaseError,
    RecordNotFoundError,
    KEY_FIELD,
)
from database.core import DatabaseCore  # noqa: E402
from database.documents import DocumentsMixin  # noqa: E402
from database.subscriptions import Snapshot, StoreSubscription, SubscriptionsMixin  # noqa: E402


class Database(DatabaseCore, DocumentsMixin, SubscriptionsMixin):
    """Composed database class combining all mixins."""
    pass


def configure_db_path(path: Path) -> None:
    """Set a custom database path before any connection is opened.

    Raises:
        RuntimeError: If the database connection is already open.
    """
    global DB_PATH
    if Database._instance is not None and Database._instance._conn is not None:
        raise RuntimeError(
            "Cannot change DB_PATH after a database connection has been opened. "
            "Call configure_db_path() before any database operations."
        )
    DB_PATH = path


db = Database()

__all__ = [
    "DB_PATH",
    "Database",
    "DatabaseError",
    "KEY_FIELD",
    "RecordNotFoundError",
    "Snapshot",
    "StoreSubscription",
    "configure_db_path",
    "db",
]
