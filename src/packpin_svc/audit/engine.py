"""Audit revision engine - rebuilds per-transaction change documents from the feed."""

from __future__ import annotations

import copy
import logging
from typing import Any, Mapping

from .feed import AuditFeed
from .store import RevisionStore
from .types import AuditAction, AuditEvent, ChangeDocument, PinChange, Revision

logger = logging.getLogger(__name__)

_ROW_ACTIONS = (AuditAction.INSERT.value, AuditAction.DELETE.value)
_PIN_ACTIONS = (AuditAction.INSERT.value, AuditAction.UPDATE.value)

# Table key for events that arrive without a table name
UNKNOWN_TABLE = "<unknown>"


class AuditRevisionEngine:
    """
    Turns the raw per-row audit feed into change documents and revisions.

    Read-only with respect to the registry: it only consumes the feed, may
    lag it arbitrarily, and never blocks registry writes.
    """

    def __init__(self, feed: AuditFeed, store: RevisionStore | None = None) -> None:
        self.feed = feed
        self.store = store if store is not None else RevisionStore()

    def materialize_change_document(self, transaction_id: int) -> ChangeDocument:
        """
        Group a transaction's events by table and action.

        INSERT/DELETE: list of row images
        UPDATE: list of {"from": before-image, "to": changed fields}
        anything else: the action tag with a None payload

        A transaction without events yields an empty document. A malformed
        event contributes a None entry for its row; the rest of the group is
        kept. Events without a table name count as malformed and are filed
        under UNKNOWN_TABLE.
        """
        events = self.feed.events_for_transaction(transaction_id)

        grouped: dict[tuple[str, str], list[AuditEvent]] = {}
        for event in events:
            action = str(event.action or "").upper()
            grouped.setdefault((event.table_name or UNKNOWN_TABLE, action), []).append(event)

        changes: dict[str, dict[str, Any]] = {}
        for (table, action), group in grouped.items():
            changes.setdefault(table, {})[action] = self._payload(action, group)

        logger.debug(f"Materialized transaction {transaction_id}: {len(events)} events, {len(changes)} tables")
        return ChangeDocument(transaction_id=transaction_id, changes=changes)

    def pin_changes(self, transaction_id: int) -> list[PinChange]:
        """
        One entry per version pin created or updated in a transaction.

        Each entry carries the pin's coordinate and package with the old and
        new distribution names. Coordinates and distributions never change
        after they are inserted, so their insert rows anywhere in the feed
        describe them for every later change.
        """
        events = [
            e for e in self.feed.events_for_transaction(transaction_id)
            if e.table_name == "versionpin" and str(e.action or "").upper() in _PIN_ACTIONS
        ]
        if not events:
            return []

        coords, dists = self._reference_rows()
        changes = []
        for event in events:
            action = str(event.action).upper()
            row = event.row_data if isinstance(event.row_data, Mapping) else {}
            if action == AuditAction.INSERT.value:
                old_id, new_id = None, row.get("distribution")
            else:
                changed = event.changed_fields if isinstance(event.changed_fields, Mapping) else {}
                old_id, new_id = row.get("distribution"), changed.get("distribution")

            coord = coords.get(row.get("coord"), {})
            if not coord or new_id not in dists:
                logger.warning(f"Audit event {event.event_id} refers to rows missing from the feed")

            changes.append(PinChange(
                event_id=event.event_id,
                transaction_id=event.transaction_id,
                action=action,
                level=coord.get("level"),
                role=coord.get("role"),
                platform=coord.get("platform"),
                site=coord.get("site"),
                package=coord.get("package"),
                old=dists.get(old_id),
                new=dists.get(new_id),
            ))
        return changes

    def _reference_rows(self) -> tuple[dict[Any, dict[str, Any]], dict[Any, str]]:
        """Coordinate rows and distribution names by id, from insert events."""
        coords: dict[Any, dict[str, Any]] = {}
        dists: dict[Any, str] = {}
        for event in self.feed.all_events():
            row = event.row_data
            if str(event.action or "").upper() != AuditAction.INSERT.value or not isinstance(row, Mapping):
                continue
            if event.table_name == "pincoord":
                coords[row.get("id")] = dict(row)
            elif event.table_name == "distribution":
                dists[row.get("id")] = f"{row.get('package')}-{row.get('version')}"
        return coords, dists

    def _payload(self, action: str, events: list[AuditEvent]) -> list[Any] | None:
        if action in _ROW_ACTIONS:
            return [self._row_image(e) for e in events]
        if action == AuditAction.UPDATE.value:
            return [self._update_image(e) for e in events]
        return None

    @staticmethod
    def _row_image(event: AuditEvent) -> dict[str, Any] | None:
        if not event.table_name:
            logger.warning(f"Audit event {event.event_id} has no table name")
            return None
        if not isinstance(event.row_data, Mapping):
            logger.warning(f"Audit event {event.event_id} ({event.action} {event.table_name}) has no row image")
            return None
        return copy.deepcopy(dict(event.row_data))

    @staticmethod
    def _update_image(event: AuditEvent) -> dict[str, Any] | None:
        if not event.table_name:
            logger.warning(f"Audit event {event.event_id} has no table name")
            return None
        if not isinstance(event.row_data, Mapping) or not isinstance(event.changed_fields, Mapping):
            logger.warning(f"Audit event {event.event_id} (UPDATE {event.table_name}) is missing an image")
            return None
        return {
            "from": copy.deepcopy(dict(event.row_data)),
            "to": copy.deepcopy(dict(event.changed_fields)),
        }

    def create_revision(
        self,
        author: str,
        comment: str,
        change_document: ChangeDocument | Mapping[str, Any],
    ) -> int:
        """
        Store an immutable revision for a change document.

        Returns:
            The new revision id

        Raises:
            InvalidRevision: If author or comment is empty
        """
        if isinstance(change_document, ChangeDocument):
            changes = change_document.changes
            transaction_id = change_document.transaction_id
        else:
            changes = dict(change_document)
            transaction_id = None
        revision = self.store.create(author, comment, changes, transaction_id=transaction_id)
        return revision.revision_id

    def revise(self, transaction_id: int, author: str, comment: str) -> Revision:
        """Materialize a transaction and store it as a revision."""
        document = self.materialize_change_document(transaction_id)
        revision_id = self.create_revision(author, comment, document)
        return self.store.get(revision_id)

    def get_revision(self, revision_id: int) -> Revision | None:
        return self.store.get(revision_id)

    def find_revisions(self, **filters: Any) -> list[Revision]:
        """Search revisions; see RevisionStore.find for the filters."""
        return self.store.find(**filters)

    def transactions(self) -> list[int]:
        """Transaction ids known to the feed."""
        return self.feed.transaction_ids()
