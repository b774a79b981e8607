"""Revision store - thread-safe store of curated revisions."""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable

from .types import Revision

if TYPE_CHECKING:
    from ..storage.repository import StateRepository

logger = logging.getLogger(__name__)

# order_by name -> sort key
_ORDERINGS = {
    "id": lambda r: r.revision_id,
    "author": lambda r: (r.author, r.revision_id),
    "created_at": lambda r: (r.created_at, r.revision_id),
    "transaction_id": lambda r: (r.transaction_id or 0, r.revision_id),
}


class InvalidRevision(ValueError):
    """Raised when a revision is missing its author or comment."""
    pass


class RevisionStore:
    """
    Thread-safe store of revisions.

    Revisions are immutable once stored and keep their own copy of the
    change document, so they never depend on the registry rows they describe.
    With a repository attached, revisions are also written to the database.
    """

    def __init__(self, repository: StateRepository | None = None) -> None:
        self._repository = repository
        self._revisions: dict[int, Revision] = {}
        self._lock = threading.RLock()
        self._counter = 0

    def restore(self, revisions: Iterable[Revision]) -> int:
        """Reload previously stored revisions without storing them again."""
        count = 0
        with self._lock:
            for revision in revisions:
                self._revisions[revision.revision_id] = revision
                self._counter = max(self._counter, revision.revision_id)
                count += 1
        return count

    def create(
        self,
        author: str,
        comment: str,
        changes: dict[str, Any],
        transaction_id: int | None = None,
        created_at: str | None = None,
    ) -> Revision:
        """Store a new revision and return it."""
        if not author or not author.strip():
            raise InvalidRevision("Revision author is required")
        if not comment or not comment.strip():
            raise InvalidRevision("Revision comment is required")

        with self._lock:
            revision = Revision(
                revision_id=self._counter + 1,
                author=author.strip(),
                created_at=created_at or datetime.now(timezone.utc).isoformat(),
                comment=comment,
                changes=copy.deepcopy(changes),
                transaction_id=transaction_id,
            )
            if self._repository is not None:
                self._repository.save_revision(revision)
            self._counter = revision.revision_id
            self._revisions[revision.revision_id] = revision

        logger.info(f"Revision {revision.revision_id} created by {revision.author}")
        return revision

    def get(self, revision_id: int) -> Revision | None:
        """Get a revision by id. The returned revision carries a copy of its changes."""
        with self._lock:
            revision = self._revisions.get(revision_id)
        if revision is None:
            return None
        return _detached(revision)

    def find(
        self,
        author: str | None = None,
        transaction_id: int | None = None,
        order_by: str = "id",
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Revision]:
        """
        Find revisions by author and/or transaction id.

        Args:
            author: Only revisions by this author
            transaction_id: Only revisions materialized from this transaction
            order_by: id, author, created_at or transaction_id
            descending: Reverse the order
            limit: Maximum number of results

        Raises:
            ValueError: If order_by is not a known ordering
        """
        key = _ORDERINGS.get(order_by)
        if key is None:
            raise ValueError(f"Cannot order revisions by '{order_by}'")

        with self._lock:
            results = list(self._revisions.values())

        if author is not None:
            results = [r for r in results if r.author == author]
        if transaction_id is not None:
            results = [r for r in results if r.transaction_id == transaction_id]

        results.sort(key=key, reverse=descending)
        if limit is not None:
            results = results[:limit]
        return [_detached(r) for r in results]

    def count(self) -> int:
        with self._lock:
            return len(self._revisions)


def _detached(revision: Revision) -> Revision:
    return Revision(
        revision_id=revision.revision_id,
        author=revision.author,
        created_at=revision.created_at,
        comment=revision.comment,
        changes=copy.deepcopy(revision.changes),
        transaction_id=revision.transaction_id,
    )
