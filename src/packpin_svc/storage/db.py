"""SQLite database connection and schema initialization for the pin store."""

from __future__ import annotations

import sqlite3
from pathlib import Path

# Default database path
DEFAULT_DB_PATH = "packpin.db"

# SQL schema for registry rows, the audit feed and revisions
SCHEMA_SQL = """
-- Registered axis paths (every prefix is its own row)
CREATE TABLE IF NOT EXISTS axis_path (
    axis TEXT NOT NULL,
    path TEXT NOT NULL,
    PRIMARY KEY (axis, path)
);

CREATE TABLE IF NOT EXISTS package (
    name TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS distribution (
    id INTEGER PRIMARY KEY,
    package TEXT NOT NULL REFERENCES package(name),
    version TEXT NOT NULL,
    UNIQUE(package, version)
);

CREATE TABLE IF NOT EXISTS pincoord (
    id INTEGER PRIMARY KEY,
    role TEXT NOT NULL,
    level TEXT NOT NULL,
    site TEXT NOT NULL,
    platform TEXT NOT NULL,
    package TEXT NOT NULL REFERENCES package(name),
    UNIQUE(role, level, site, platform, package)
);

CREATE TABLE IF NOT EXISTS versionpin (
    id INTEGER PRIMARY KEY,
    coord INTEGER NOT NULL UNIQUE REFERENCES pincoord(id),
    distribution INTEGER NOT NULL REFERENCES distribution(id)
);

CREATE TABLE IF NOT EXISTS withpackage (
    id INTEGER PRIMARY KEY,
    versionpin INTEGER NOT NULL REFERENCES versionpin(id),
    package TEXT NOT NULL REFERENCES package(name),
    pinorder INTEGER NOT NULL
);

-- Per-row audit feed; row images are JSON
CREATE TABLE IF NOT EXISTS audit_event (
    id INTEGER PRIMARY KEY,
    transaction_id INTEGER NOT NULL,
    table_name TEXT,
    action TEXT,
    row_data TEXT,
    changed_fields TEXT,
    recorded_at TEXT
);

CREATE TABLE IF NOT EXISTS revision (
    id INTEGER PRIMARY KEY,
    author TEXT NOT NULL,
    created_at TEXT NOT NULL,
    comment TEXT NOT NULL,
    changeset TEXT NOT NULL,
    transaction_id INTEGER
);

CREATE INDEX IF NOT EXISTS idx_withpackage_pin ON withpackage(versionpin);
CREATE INDEX IF NOT EXISTS idx_audit_transaction ON audit_event(transaction_id);
"""


def init_db(db_path: str | Path = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Initialize the database and create tables if they don't exist.

    The connection may be shared across threads; callers serialize access.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        A connection to the database.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.executescript(SCHEMA_SQL)
    conn.commit()

    return conn


class DatabaseManager:
    """Manages the database connection of the pin store."""

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Get or create a database connection."""
        if self._conn is None:
            self._conn = init_db(self.db_path)
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> sqlite3.Connection:
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
