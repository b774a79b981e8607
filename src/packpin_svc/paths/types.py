"""Axis and label path types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Axis(str, Enum):
    """One of the four independent context dimensions.

    Each axis is its own keyspace: ``any.model`` on the role axis and
    ``any.model`` on the site axis are unrelated paths.
    """
    ROLE = "role"
    LEVEL = "level"
    SITE = "site"
    PLATFORM = "platform"

    @property
    def root(self) -> str:
        """Fixed first label of every path on this axis."""
        return "facility" if self is Axis.LEVEL else "any"

    @property
    def min_depth(self) -> int:
        """Smallest depth accepted when registering a path."""
        return _DEPTH_POLICY[self][0]

    @property
    def max_depth(self) -> int | None:
        """Largest depth accepted when registering a path (None = unbounded)."""
        return _DEPTH_POLICY[self][1]


# axis -> (min depth, max depth)
_DEPTH_POLICY: dict[Axis, tuple[int, int | None]] = {
    Axis.ROLE: (1, None),
    Axis.LEVEL: (2, None),
    Axis.SITE: (2, 2),
    Axis.PLATFORM: (2, 2),
}


@dataclass(frozen=True, slots=True, order=True)
class LabelPath:
    """
    A node in one axis tree.

    Examples:
        any                       (role root)
        any.model.beta            (role model, subrole beta)
        facility.bayou.rd.0001    (level: show, sequence, shot)
        any.cent7_64              (platform)
    """
    axis: Axis
    labels: tuple[str, ...]

    def __str__(self) -> str:
        return ".".join(self.labels)

    def __len__(self) -> int:
        return len(self.labels)

    @property
    def depth(self) -> int:
        """Specificity score: number of labels including the root."""
        return len(self.labels)

    @property
    def is_root(self) -> bool:
        return len(self.labels) == 1

    @property
    def parent(self) -> LabelPath | None:
        """Parent path, or None at the axis root."""
        if len(self.labels) <= 1:
            return None
        return LabelPath(self.axis, self.labels[:-1])

    def ancestors(self) -> list[LabelPath]:
        """All proper prefixes, root first."""
        return [LabelPath(self.axis, self.labels[:i]) for i in range(1, len(self.labels))]

    def lineage(self) -> list[LabelPath]:
        """Proper prefixes followed by the path itself."""
        return self.ancestors() + [self]

    def contains(self, other: LabelPath) -> bool:
        """True if this path is an ancestor of, or equal to, ``other``."""
        if self.axis is not other.axis:
            return False
        if len(self.labels) > len(other.labels):
            return False
        return other.labels[:len(self.labels)] == self.labels

    def is_ancestor_of(self, other: LabelPath) -> bool:
        """Strict ancestor check."""
        return len(self.labels) < len(other.labels) and self.contains(other)

    def is_descendant_of(self, other: LabelPath) -> bool:
        return other.is_ancestor_of(self)

    @classmethod
    def root(cls, axis: Axis) -> LabelPath:
        return cls(axis, (axis.root,))
