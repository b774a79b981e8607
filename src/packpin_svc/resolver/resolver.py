"""Specificity-ranked version pin resolution."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

from ..paths.types import LabelPath
from ..pins.registry import PinRegistry, RegistrySnapshot
from ..pins.types import Context, Coordinate, VersionPin, normalize_package_name

logger = logging.getLogger(__name__)


class InvalidSearchMode(ValueError):
    """Raised when a search mode is not ancestor, exact or descendant."""
    pass


class SearchMode(str, Enum):
    """
    Direction of a pin search relative to the requested context.

    ANCESTOR:   pins at the request or any broader context; best match wins
    EXACT:      the pin at exactly the requested context
    DESCENDANT: every pin at the request or any narrower context
    """
    ANCESTOR = "ancestor"
    EXACT = "exact"
    DESCENDANT = "descendant"

    @classmethod
    def parse(cls, value: SearchMode | str) -> SearchMode:
        if isinstance(value, SearchMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidSearchMode(f"{value} is invalid search mode") from None


def specificity_key(pin: VersionPin) -> tuple[int, int, int, int, tuple, tuple, tuple, tuple]:
    """
    Sort key for ranking pins, most specific is largest.

    Depth decides first, in the order level, role, platform, site. Equal
    depths fall back to the labels themselves in the same axis order.
    """
    coord = pin.coordinate
    return (
        coord.level.depth,
        coord.role.depth,
        coord.platform.depth,
        coord.site.depth,
        coord.level.labels,
        coord.role.labels,
        coord.platform.labels,
        coord.site.labels,
    )


def rank(pins: Iterable[VersionPin]) -> list[VersionPin]:
    """Order pins most specific first; pin id breaks any remaining tie."""
    ordered = sorted(pins, key=lambda p: p.pin_id)
    ordered.sort(key=specificity_key, reverse=True)
    return ordered


class Resolver:
    """
    Resolves which version pin applies to a package in a context.

    Resolution is purely structural: a request for a level that was never
    registered still matches pins at its registered ancestors, so the
    returned pin's context may differ textually from the request.
    """

    def __init__(self, registry: PinRegistry) -> None:
        self.registry = registry

    def resolve(
        self,
        package: str,
        role: str | LabelPath | None = None,
        level: str | LabelPath | None = None,
        site: str | LabelPath | None = None,
        platform: str | LabelPath | None = None,
        mode: SearchMode | str = SearchMode.ANCESTOR,
    ) -> VersionPin | list[VersionPin] | None:
        """
        Resolve a package in a context.

        Args:
            package: Package name
            role, level, site, platform: Axis values; missing ones default to the root
            mode: ancestor (default), exact or descendant

        Returns:
            ancestor/exact: the matching pin, or None if nothing matches
            descendant: list of matching pins, most specific first (may be empty)

        Raises:
            InvalidSearchMode: For any other mode
            MalformedPath: If an axis value does not parse
        """
        search_mode = SearchMode.parse(mode)
        context = Context.parse(role=role, level=level, site=site, platform=platform)
        return self.resolve_context(package, context, search_mode)

    def resolve_context(
        self,
        package: str,
        context: Context,
        mode: SearchMode | str = SearchMode.ANCESTOR,
        snapshot: RegistrySnapshot | None = None,
    ) -> VersionPin | list[VersionPin] | None:
        """Resolve against an already parsed context, optionally on a given snapshot."""
        search_mode = SearchMode.parse(mode)
        package = normalize_package_name(package)
        snapshot = snapshot if snapshot is not None else self.registry.snapshot()

        if search_mode is SearchMode.EXACT:
            pin = snapshot.pins.get(Coordinate.from_context(package, context))
            logger.debug(f"Exact {package} {context}: {pin or 'not found'}")
            return pin

        if search_mode is SearchMode.ANCESTOR:
            ranked = self._candidates(snapshot, package, context)
            winner = ranked[0] if ranked else None
            logger.debug(f"Resolved {package} {context}: {winner or 'not found'}")
            return winner

        matches = rank(
            p for p in snapshot.pins_for(package)
            if context.contains(p.coordinate.context)
        )
        logger.debug(f"Descendants of {package} {context}: {len(matches)} pins")
        return matches

    def find(
        self,
        package: str,
        context: Context,
        snapshot: RegistrySnapshot | None = None,
    ) -> VersionPin | None:
        """Ancestor-mode resolution returning only a single pin or None."""
        snapshot = snapshot if snapshot is not None else self.registry.snapshot()
        ranked = self._candidates(snapshot, normalize_package_name(package), context)
        return ranked[0] if ranked else None

    def candidates(self, package: str, context: Context) -> list[VersionPin]:
        """Every pin that applies to the context, best match first."""
        return self._candidates(self.registry.snapshot(), normalize_package_name(package), context)

    @staticmethod
    def _candidates(snapshot: RegistrySnapshot, package: str, context: Context) -> list[VersionPin]:
        return rank(
            p for p in snapshot.pins_for(package)
            if p.coordinate.context.contains(context)
        )

    def resolve_all(self, context: Context) -> list[VersionPin]:
        """The winning pin of every package that has one in this context, by package name."""
        snapshot = self.registry.snapshot()
        winners = []
        for package in sorted(snapshot.packages):
            pin = self.find(package, context, snapshot)
            if pin is not None:
                winners.append(pin)
        return winners
