"""Repository layer - persists registry rows, audit events and revisions in SQLite."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from typing import Any, Iterable, Optional

from ..audit.types import AuditAction, AuditEvent, Revision
from ..paths.types import Axis

logger = logging.getLogger(__name__)

# (table, action, row image, changed fields)
RowChange = tuple[str, AuditAction, dict[str, Any], Optional[dict[str, Any]]]

_AXIS_TABLES = {axis.value for axis in Axis}


class StateRepository:
    """
    Repository for the pin store.

    Registry writes arrive as the same row changes the audit feed records,
    so the stored tables always match the committed registry state. A batch
    of changes is applied in one SQLite transaction.
    """

    def __init__(self, conn: sqlite3.Connection):
        """Initialize the repository.

        Args:
            conn: SQLite database connection.
        """
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()

    # =========================================================================
    # Registry rows
    # =========================================================================

    def apply(self, changes: Iterable[RowChange]) -> None:
        """Apply a batch of row changes atomically.

        Raises:
            ValueError: If a change names a table or action the store does not hold
            sqlite3.Error: If the database rejects the batch (nothing is applied)
        """
        count = 0
        with self._lock, self.conn:
            for table, action, row, changed in changes:
                self._apply_one(table, action, row, changed)
                count += 1
        logger.debug(f"Persisted {count} row changes")

    def _apply_one(self, table: str, action: str, row: dict[str, Any], changed: dict[str, Any] | None) -> None:
        if table in _AXIS_TABLES and action == AuditAction.INSERT:
            self.conn.execute(
                "INSERT OR IGNORE INTO axis_path (axis, path) VALUES (?, ?)",
                (table, row["path"])
            )
        elif table == "package" and action == AuditAction.INSERT:
            self.conn.execute("INSERT INTO package (name) VALUES (?)", (row["name"],))
        elif table == "distribution" and action == AuditAction.INSERT:
            self.conn.execute(
                "INSERT INTO distribution (id, package, version) VALUES (?, ?, ?)",
                (row["id"], row["package"], row["version"])
            )
        elif table == "pincoord" and action == AuditAction.INSERT:
            self.conn.execute(
                "INSERT INTO pincoord (id, role, level, site, platform, package) VALUES (?, ?, ?, ?, ?, ?)",
                (row["id"], row["role"], row["level"], row["site"], row["platform"], row["package"])
            )
        elif table == "versionpin" and action == AuditAction.INSERT:
            self.conn.execute(
                "INSERT INTO versionpin (id, coord, distribution) VALUES (?, ?, ?)",
                (row["id"], row["coord"], row["distribution"])
            )
        elif table == "versionpin" and action == AuditAction.UPDATE:
            self.conn.execute(
                "UPDATE versionpin SET distribution = ? WHERE id = ?",
                (changed["distribution"], row["id"])
            )
        elif table == "withpackage" and action == AuditAction.INSERT:
            self.conn.execute(
                "INSERT INTO withpackage (id, versionpin, package, pinorder) VALUES (?, ?, ?, ?)",
                (row["id"], row["versionpin"], row["package"], row["pinorder"])
            )
        elif table == "withpackage" and action == AuditAction.DELETE:
            self.conn.execute("DELETE FROM withpackage WHERE id = ?", (row["id"],))
        else:
            raise ValueError(f"Cannot persist {action} on {table}")

    def load_paths(self) -> list[tuple[str, str]]:
        """All stored (axis, path) rows, shortest paths first."""
        with self._lock:
            cursor = self.conn.execute(
                "SELECT axis, path FROM axis_path ORDER BY axis, length(path), path"
            )
            return [(row["axis"], row["path"]) for row in cursor.fetchall()]

    def load_registry(self) -> dict[str, list[dict[str, Any]]]:
        """Stored registry rows keyed by table name, each ordered by id."""
        queries = {
            "package": "SELECT name FROM package ORDER BY name",
            "distribution": "SELECT id, package, version FROM distribution ORDER BY id",
            "pincoord": "SELECT id, role, level, site, platform, package FROM pincoord ORDER BY id",
            "versionpin": "SELECT id, coord, distribution FROM versionpin ORDER BY id",
            "withpackage": "SELECT id, versionpin, package, pinorder FROM withpackage ORDER BY versionpin, pinorder",
        }
        with self._lock:
            return {
                table: [dict(row) for row in self.conn.execute(sql).fetchall()]
                for table, sql in queries.items()
            }

    def is_empty(self) -> bool:
        """True if no package or axis path has ever been stored."""
        with self._lock:
            packages = self.conn.execute("SELECT COUNT(*) AS cnt FROM package").fetchone()["cnt"]
            paths = self.conn.execute("SELECT COUNT(*) AS cnt FROM axis_path").fetchone()["cnt"]
        return packages == 0 and paths == 0

    # =========================================================================
    # Audit events
    # =========================================================================

    def save_event(self, event: AuditEvent) -> None:
        with self._lock, self.conn:
            self.conn.execute(
                """
                INSERT INTO audit_event
                    (id, transaction_id, table_name, action, row_data, changed_fields, recorded_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.event_id,
                    event.transaction_id,
                    event.table_name,
                    event.action,
                    _dump(event.row_data),
                    _dump(event.changed_fields),
                    event.recorded_at,
                )
            )

    def load_events(self) -> list[AuditEvent]:
        """All stored audit events in feed order."""
        with self._lock:
            cursor = self.conn.execute("SELECT * FROM audit_event ORDER BY id")
            rows = cursor.fetchall()
        return [
            AuditEvent(
                event_id=row["id"],
                transaction_id=row["transaction_id"],
                table_name=row["table_name"],
                action=row["action"],
                row_data=_load(row["row_data"]),
                changed_fields=_load(row["changed_fields"]),
                recorded_at=row["recorded_at"],
            )
            for row in rows
        ]

    # =========================================================================
    # Revisions
    # =========================================================================

    def save_revision(self, revision: Revision) -> None:
        with self._lock, self.conn:
            self.conn.execute(
                """
                INSERT INTO revision (id, author, created_at, comment, changeset, transaction_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    revision.revision_id,
                    revision.author,
                    revision.created_at,
                    revision.comment,
                    _dump(revision.changes),
                    revision.transaction_id,
                )
            )

    def load_revisions(self) -> list[Revision]:
        """All stored revisions ordered by id."""
        with self._lock:
            cursor = self.conn.execute("SELECT * FROM revision ORDER BY id")
            rows = cursor.fetchall()
        return [
            Revision(
                revision_id=row["id"],
                author=row["author"],
                created_at=row["created_at"],
                comment=row["comment"],
                changes=_load(row["changeset"]) or {},
                transaction_id=row["transaction_id"],
            )
            for row in rows
        ]


def _dump(value: Any) -> str | None:
    return None if value is None else json.dumps(value)


def _load(text: str | None) -> Any:
    return None if text is None else json.loads(text)
