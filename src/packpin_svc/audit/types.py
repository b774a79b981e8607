"""Audit event, change document and revision types."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AuditAction(str, Enum):
    """Row-level action kinds recorded by the audit feed."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    TRUNCATE = "TRUNCATE"


RowImage = dict[str, Any]


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """
    One mutated row, as delivered by the audit feed.

    row_data is the row before the change (the new row for inserts).
    changed_fields holds only the columns an update changed.
    """
    event_id: int
    transaction_id: int
    table_name: str
    action: str
    row_data: RowImage | None = None
    changed_fields: RowImage | None = None
    recorded_at: str | None = None  # ISO format

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "transaction_id": self.transaction_id,
            "table_name": self.table_name,
            "action": self.action,
            "row_data": copy.deepcopy(self.row_data),
            "changed_fields": copy.deepcopy(self.changed_fields),
            "recorded_at": self.recorded_at,
        }


@dataclass(slots=True)
class ChangeDocument:
    """
    Per-transaction reconstruction of audit events.

    changes is keyed by table, then by action:
        {"versionpin": {"UPDATE": [{"from": {...}, "to": {...}}]}}
    """
    transaction_id: int
    changes: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.changes

    @property
    def tables(self) -> list[str]:
        return sorted(self.changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "changes": copy.deepcopy(self.changes),
        }


@dataclass(frozen=True, slots=True)
class Revision:
    """A curated, immutable record of one administrative edit."""
    revision_id: int
    author: str
    created_at: str  # ISO format
    comment: str
    changes: dict[str, Any]
    transaction_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "revision_id": self.revision_id,
            "author": self.author,
            "created_at": self.created_at,
            "comment": self.comment,
            "changes": copy.deepcopy(self.changes),
            "transaction_id": self.transaction_id,
        }


@dataclass(frozen=True, slots=True)
class PinChange:
    """
    One version pin change of a transaction, readable without the ids.

    old is None for a newly created pin. Fields the feed cannot resolve
    are None as well.
    """
    event_id: int
    transaction_id: int
    action: str
    level: str | None
    role: str | None
    platform: str | None
    site: str | None
    package: str | None
    old: str | None
    new: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "transaction_id": self.transaction_id,
            "action": self.action,
            "level": self.level,
            "role": self.role,
            "platform": self.platform,
            "site": self.site,
            "package": self.package,
            "old": self.old,
            "new": self.new,
        }
