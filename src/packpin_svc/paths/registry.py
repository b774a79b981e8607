"""Path hierarchy - the four axis label trees."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterable

from ..audit.feed import AuditFeed
from ..audit.types import AuditAction
from .parser import parse_axis, parse_label_path, parse_registrable_path
from .types import Axis, LabelPath

if TYPE_CHECKING:
    from ..storage.repository import StateRepository

logger = logging.getLogger(__name__)


class PathHierarchy:
    """
    Thread-safe registry of label paths for every axis.

    Supports:
    - Idempotent registration with prefix closure
    - Ancestor/descendant containment
    - Nearest registered ancestor lookup
    - Children enumeration

    Keys are tagged with their axis, so the four trees never mix.
    """

    def __init__(self, feed: AuditFeed | None = None, repository: StateRepository | None = None) -> None:
        self._paths: dict[Axis, set[tuple[str, ...]]] = {axis: set() for axis in Axis}
        self._children: dict[LabelPath, set[LabelPath]] = {}
        self._lock = threading.RLock()
        self._feed = feed
        self._repository = repository

        # Axis roots always exist and are neither audited nor stored
        for axis in Axis:
            self._paths[axis].add((axis.root,))

    def _add(self, path: LabelPath) -> None:
        self._paths[path.axis].add(path.labels)
        parent = path.parent
        if parent is not None:
            self._children.setdefault(parent, set()).add(path)

    def register(self, axis: Axis | str, path: str | LabelPath) -> LabelPath:
        """
        Register a path and every ancestor prefix.

        Re-registering an existing path is a no-op.

        Returns:
            The normalized path

        Raises:
            MalformedPath: If the text does not parse or violates the axis depth policy
        """
        label_path = parse_registrable_path(axis, path)
        axis = label_path.axis

        with self._lock:
            inserted = [p for p in label_path.lineage() if p.labels not in self._paths[axis]]
            rows = [{"path": str(p)} for p in inserted]
            if rows and self._repository is not None:
                self._repository.apply([(axis.value, AuditAction.INSERT, row, None) for row in rows])

            for p in inserted:
                self._add(p)

            if rows and self._feed is not None:
                with self._feed.transaction():
                    for row in rows:
                        self._feed.record(axis.value, AuditAction.INSERT, row)

        if inserted:
            logger.info(f"Registered {axis.value} path {label_path} ({len(inserted)} new)")
        return label_path

    def restore(self, paths: Iterable[tuple[Axis | str, str]]) -> int:
        """Reload stored (axis, path) rows without auditing or storing them again."""
        count = 0
        with self._lock:
            for axis, text in paths:
                for p in parse_label_path(axis, text).lineage():
                    if p.labels not in self._paths[p.axis]:
                        self._add(p)
                        count += 1
        return count

    def register_many(self, axis: Axis | str, paths: list[str]) -> list[LabelPath]:
        """Register several paths on one axis in a single transaction."""
        if self._feed is None:
            return [self.register(axis, p) for p in paths]
        with self._feed.transaction():
            return [self.register(axis, p) for p in paths]

    def exists(self, axis: Axis | str, path: str | LabelPath) -> bool:
        """Check if a path is registered."""
        label_path = parse_label_path(axis, path)
        with self._lock:
            return label_path.labels in self._paths[label_path.axis]

    def nearest_registered(self, axis: Axis | str, path: str | LabelPath) -> LabelPath:
        """
        Return the deepest registered path that contains ``path``.

        The axis root is always registered, so this never comes back empty.
        """
        label_path = parse_label_path(axis, path)
        with self._lock:
            registered = self._paths[label_path.axis]
            for candidate in reversed(label_path.lineage()):
                if candidate.labels in registered:
                    return candidate
        return LabelPath.root(label_path.axis)

    def children(self, axis: Axis | str, path: str | LabelPath | None = None) -> list[LabelPath]:
        """Direct children of a path (the axis root by default)."""
        label_path = parse_label_path(axis, path)
        with self._lock:
            return sorted(self._children.get(label_path, set()))

    def all_paths(self, axis: Axis | str) -> list[LabelPath]:
        """All registered paths on one axis, sorted."""
        axis = parse_axis(axis)
        with self._lock:
            return [LabelPath(axis, labels) for labels in sorted(self._paths[axis])]

    def count(self) -> dict[str, int]:
        """Number of registered paths per axis."""
        with self._lock:
            return {axis.value: len(paths) for axis, paths in self._paths.items()}

    @staticmethod
    def contains(ancestor: LabelPath, descendant: LabelPath) -> bool:
        """True iff ancestor's labels are a prefix of descendant's (same axis)."""
        return ancestor.contains(descendant)

    @staticmethod
    def depth(path: LabelPath) -> int:
        return path.depth
