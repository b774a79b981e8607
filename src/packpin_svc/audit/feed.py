"""Append-only audit event feed."""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from .types import AuditAction, AuditEvent

if TYPE_CHECKING:
    from ..storage.repository import StateRepository

logger = logging.getLogger(__name__)


class AuditFeed:
    """
    Thread-safe, append-only log of per-row mutations.

    Writers record rows inside a transaction scope; every row recorded in
    the same scope (on the same thread) shares one transaction id. Rows
    recorded outside any scope get a transaction of their own.

    Events delivered by an external source can be added with ``append``.
    With a repository attached, every new event is stored before it becomes
    visible in the feed.
    """

    def __init__(self, repository: StateRepository | None = None) -> None:
        self._repository = repository
        self._events: list[AuditEvent] = []
        self._by_transaction: dict[int, list[AuditEvent]] = {}
        self._lock = threading.RLock()
        self._local = threading.local()
        self._event_counter = 0
        self._transaction_counter = 0

    def _next_transaction_id(self) -> int:
        with self._lock:
            self._transaction_counter += 1
            return self._transaction_counter

    @property
    def current_transaction_id(self) -> int | None:
        """Transaction id of the open scope on this thread, if any."""
        return getattr(self._local, "transaction_id", None)

    @contextmanager
    def transaction(self) -> Iterator[int]:
        """Open a transaction scope; nested scopes join the outer one."""
        current = self.current_transaction_id
        if current is not None:
            yield current
            return

        transaction_id = self._next_transaction_id()
        self._local.transaction_id = transaction_id
        try:
            yield transaction_id
        finally:
            self._local.transaction_id = None

    def record(
        self,
        table_name: str,
        action: AuditAction | str,
        row_data: dict[str, Any] | None,
        changed_fields: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Record one mutated row in the current transaction."""
        action_tag = action.value if isinstance(action, AuditAction) else str(action).upper()
        with self.transaction() as transaction_id:
            with self._lock:
                self._event_counter += 1
                event = AuditEvent(
                    event_id=self._event_counter,
                    transaction_id=transaction_id,
                    table_name=table_name,
                    action=action_tag,
                    row_data=copy.deepcopy(row_data),
                    changed_fields=copy.deepcopy(changed_fields),
                    recorded_at=datetime.now(timezone.utc).isoformat(),
                )
                if self._repository is not None:
                    self._repository.save_event(event)
                self._store(event)
        logger.debug(f"Audit {action_tag} on {table_name} (tx {transaction_id})")
        return event

    def append(self, event: AuditEvent) -> None:
        """Append an externally produced event, keeping counters ahead of its ids."""
        with self._lock:
            if self._repository is not None:
                self._repository.save_event(event)
            self._advance(event)
            self._store(event)

    def restore(self, events: Iterable[AuditEvent]) -> int:
        """Reload previously stored events without storing them again."""
        count = 0
        with self._lock:
            for event in events:
                self._advance(event)
                self._store(event)
                count += 1
        return count

    def _advance(self, event: AuditEvent) -> None:
        self._event_counter = max(self._event_counter, event.event_id)
        self._transaction_counter = max(self._transaction_counter, event.transaction_id)

    def _store(self, event: AuditEvent) -> None:
        self._events.append(event)
        self._by_transaction.setdefault(event.transaction_id, []).append(event)

    def events_for_transaction(self, transaction_id: int) -> list[AuditEvent]:
        """All events of a transaction, in feed order."""
        with self._lock:
            return list(self._by_transaction.get(transaction_id, []))

    def transaction_ids(self) -> list[int]:
        """Transaction ids that have at least one event, ascending."""
        with self._lock:
            return sorted(self._by_transaction)

    def since(self, event_id: int = 0, limit: int | None = None) -> list[AuditEvent]:
        """Events with an id greater than ``event_id``, for lagging consumers."""
        with self._lock:
            events = [e for e in self._events if e.event_id > event_id]
        return events[:limit] if limit is not None else events

    def all_events(self) -> list[AuditEvent]:
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
