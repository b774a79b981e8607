"""SQLite persistence for registry rows, audit events and revisions."""

from .db import DEFAULT_DB_PATH, DatabaseManager, init_db
from .repository import RowChange, StateRepository

__all__ = [
    "DEFAULT_DB_PATH",
    "DatabaseManager",
    "init_db",
    "RowChange",
    "StateRepository",
]
