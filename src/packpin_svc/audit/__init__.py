"""Audit feed, change documents and revisions."""

from .types import AuditAction, AuditEvent, ChangeDocument, PinChange, Revision
from .feed import AuditFeed
from .store import InvalidRevision, RevisionStore
from .engine import AuditRevisionEngine

__all__ = [
    "AuditAction",
    "AuditEvent",
    "ChangeDocument",
    "PinChange",
    "Revision",
    "AuditFeed",
    "InvalidRevision",
    "RevisionStore",
    "AuditRevisionEngine",
]
