"""Pin registry - packages, distributions, version pins and their dependencies."""

from __future__ import annotations

import itertools
import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from functools import cached_property
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Sequence

from ..audit.feed import AuditFeed
from ..audit.types import AuditAction
from ..paths.parser import MAX_LABEL_LENGTH, validate_label
from ..paths.registry import PathHierarchy
from ..storage.repository import RowChange, StateRepository
from .types import Coordinate, Dependency, Distribution, VersionPin, normalize_package_name

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Base class for registry write and lookup failures."""
    pass


class DuplicatePackage(RegistryError):
    """Raised when creating a package that already exists."""
    pass


class UnknownPackage(RegistryError):
    """Raised when an operation names a package that was never created."""
    pass


class MalformedDistribution(RegistryError, ValueError):
    """Raised when a distribution version cannot be parsed."""
    pass


class DuplicateDistribution(RegistryError):
    """Raised when creating a (package, version) pair that already exists."""
    pass


class UnknownDistribution(RegistryError):
    """Raised when a distribution reference does not exist."""
    pass


class UnknownPath(RegistryError):
    """Raised when a coordinate uses an axis path that is not registered."""
    pass


class UnknownVersionPin(RegistryError):
    """Raised when a version pin id does not exist."""
    pass


class PackageMismatch(RegistryError):
    """Raised when a pin's distribution belongs to a different package than its coordinate."""
    pass


class DuplicateDependency(RegistryError):
    """Raised when a dependency list names the same package twice."""
    pass


def parse_version(version: str | Sequence[str]) -> tuple[str, ...]:
    """
    Parse a distribution version into labels.

    Both '.' and '-' separate labels: "2018.sp3" and "2018-sp3" are equal.

    Raises:
        MalformedDistribution: If the version is empty or has invalid labels
    """
    if isinstance(version, str):
        clean = re.sub(r"\s+", "", version.strip().lower())
        labels = re.split(r"[.\-]", clean) if clean else []
    else:
        labels = [str(v).strip().lower() for v in version]

    if not labels:
        raise MalformedDistribution(f"Distribution version is empty: '{version}'")
    for label in labels:
        if not validate_label(label):
            raise MalformedDistribution(
                f"Invalid version label '{label}' in '{version}'. "
                f"Labels must be 1-{MAX_LABEL_LENGTH} letters, digits, or underscores."
            )
    return tuple(labels)


def parse_distribution_name(name: str) -> tuple[str, tuple[str, ...]]:
    """Split a distribution name like "maya-2018.sp3" into package and version."""
    package, sep, version = (name or "").strip().partition("-")
    if not sep:
        raise MalformedDistribution(f"Distribution name must be <package>-<version>: '{name}'")
    return normalize_package_name(package), parse_version(version)


@dataclass(frozen=True)
class RegistrySnapshot:
    """
    Immutable view of committed registry state.

    Readers hold on to one snapshot for the duration of a lookup; writers
    publish a new snapshot on every commit.
    """
    packages: frozenset[str] = frozenset()
    distributions: Mapping[int, Distribution] = field(default_factory=lambda: MappingProxyType({}))
    pins: Mapping[Coordinate, VersionPin] = field(default_factory=lambda: MappingProxyType({}))
    dependencies: Mapping[int, tuple[Dependency, ...]] = field(default_factory=lambda: MappingProxyType({}))
    version: int = 0

    @cached_property
    def pins_by_id(self) -> Mapping[int, VersionPin]:
        return MappingProxyType({p.pin_id: p for p in self.pins.values()})

    @cached_property
    def pins_by_package(self) -> Mapping[str, tuple[VersionPin, ...]]:
        index: dict[str, list[VersionPin]] = {}
        for pin in self.pins.values():
            index.setdefault(pin.package, []).append(pin)
        return MappingProxyType({k: tuple(v) for k, v in index.items()})

    @cached_property
    def distributions_by_key(self) -> Mapping[tuple[str, tuple[str, ...]], Distribution]:
        return MappingProxyType({(d.package, d.version): d for d in self.distributions.values()})

    def pin(self, pin_id: int) -> VersionPin | None:
        return self.pins_by_id.get(pin_id)

    def pins_for(self, package: str) -> tuple[VersionPin, ...]:
        return self.pins_by_package.get(package, ())

    def dependency_names(self, pin_id: int) -> list[str]:
        return [d.package for d in self.dependencies.get(pin_id, ())]


class _Draft:
    """Mutable working copy of a snapshot; each mapping is copied on first write."""

    def __init__(self, base: RegistrySnapshot) -> None:
        self.base = base
        self._packages: set[str] | None = None
        self._distributions: dict[int, Distribution] | None = None
        self._pins: dict[Coordinate, VersionPin] | None = None
        self._dependencies: dict[int, tuple[Dependency, ...]] | None = None
        self.rows: list[RowChange] = []

    def record(self, table: str, action: AuditAction, row: dict, changed: dict | None = None) -> None:
        """Queue a row change; it is stored and audited when the draft commits."""
        self.rows.append((table, action, row, changed))

    def add_package(self, name: str) -> None:
        if self._packages is None:
            self._packages = set(self.base.packages)
        self._packages.add(name)

    def put_distribution(self, distribution: Distribution) -> None:
        if self._distributions is None:
            self._distributions = dict(self.base.distributions)
        self._distributions[distribution.distribution_id] = distribution

    def put_pin(self, pin: VersionPin) -> None:
        if self._pins is None:
            self._pins = dict(self.base.pins)
        self._pins[pin.coordinate] = pin

    def put_dependencies(self, pin_id: int, dependencies: tuple[Dependency, ...]) -> None:
        if self._dependencies is None:
            self._dependencies = dict(self.base.dependencies)
        if dependencies:
            self._dependencies[pin_id] = dependencies
        else:
            self._dependencies.pop(pin_id, None)

    def freeze(self) -> RegistrySnapshot:
        base = self.base
        return RegistrySnapshot(
            packages=frozenset(self._packages) if self._packages is not None else base.packages,
            distributions=(
                MappingProxyType(self._distributions)
                if self._distributions is not None else base.distributions
            ),
            pins=MappingProxyType(self._pins) if self._pins is not None else base.pins,
            dependencies=(
                MappingProxyType(self._dependencies)
                if self._dependencies is not None else base.dependencies
            ),
            version=base.version + 1,
        )


class PinRegistry:
    """
    Registry of packages, distributions and version pins.

    Reads go through ``snapshot()`` and never take a lock. Writes are small
    atomic units: each one validates against the latest committed state and
    publishes a new snapshot, or raises and leaves state unchanged. Writes to
    the same coordinate are serialized on a per-coordinate lock.

    When an audit feed is attached, every mutated row is recorded in it.
    When a repository is attached, the same rows are stored before the new
    snapshot is published; a failed store leaves the registry unchanged.
    """

    def __init__(
        self,
        hierarchy: PathHierarchy | None = None,
        feed: AuditFeed | None = None,
        repository: StateRepository | None = None,
    ) -> None:
        self.hierarchy = hierarchy if hierarchy is not None else PathHierarchy(feed, repository)
        self._feed = feed
        self._repository = repository
        self._snapshot = RegistrySnapshot()
        self._commit_lock = threading.Lock()
        self._coord_locks: dict[Coordinate, threading.Lock] = {}
        self._coord_locks_guard = threading.Lock()
        self._distribution_ids = itertools.count(1)
        self._coord_ids = itertools.count(1)
        self._pin_ids = itertools.count(1)
        self._dependency_row_ids = itertools.count(1)
        # pin id -> withpackage row ids, aligned with the dependency tuple
        self._dependency_rows: dict[int, tuple[int, ...]] = {}

    # =========================================================================
    # Transactions and commits
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[int | None]:
        """Group every write in the block under one audit transaction id."""
        if self._feed is None:
            yield None
            return
        with self._feed.transaction() as transaction_id:
            yield transaction_id

    @contextmanager
    def _writing(self) -> Iterator[_Draft]:
        with self.transaction(), self._commit_lock:
            draft = _Draft(self._snapshot)
            yield draft
            if draft.rows and self._repository is not None:
                self._repository.apply(draft.rows)
            if self._feed is not None:
                for table, action, row, changed in draft.rows:
                    self._feed.record(table, action, row, changed)
            self._snapshot = draft.freeze()

    def _lock_for(self, coordinate: Coordinate) -> threading.Lock:
        with self._coord_locks_guard:
            lock = self._coord_locks.get(coordinate)
            if lock is None:
                lock = self._coord_locks[coordinate] = threading.Lock()
            return lock

    def snapshot(self) -> RegistrySnapshot:
        """The latest committed state."""
        return self._snapshot

    def restore(self, rows: Mapping[str, Sequence[Mapping[str, Any]]]) -> RegistrySnapshot:
        """
        Replace the registry state with stored rows, keyed by table name.

        Nothing is audited or stored again, and id counters continue after
        the highest restored ids. Axis paths must already be in the hierarchy.
        """
        distributions = {
            r["id"]: Distribution(distribution_id=r["id"], package=r["package"], version=parse_version(r["version"]))
            for r in rows.get("distribution", ())
        }
        coords = {
            r["id"]: Coordinate.build(
                r["package"], role=r["role"], level=r["level"], site=r["site"], platform=r["platform"]
            )
            for r in rows.get("pincoord", ())
        }

        pins: dict[Coordinate, VersionPin] = {}
        for r in rows.get("versionpin", ()):
            pin = VersionPin(
                pin_id=r["id"],
                coord_id=r["coord"],
                coordinate=coords[r["coord"]],
                distribution=distributions[r["distribution"]],
            )
            pins[pin.coordinate] = pin

        dependencies: dict[int, list[Dependency]] = {}
        dependency_rows: dict[int, list[int]] = {}
        for r in sorted(rows.get("withpackage", ()), key=lambda r: (r["versionpin"], r["pinorder"])):
            dependencies.setdefault(r["versionpin"], []).append(Dependency(package=r["package"], position=r["pinorder"]))
            dependency_rows.setdefault(r["versionpin"], []).append(r["id"])

        with self._commit_lock:
            self._snapshot = RegistrySnapshot(
                packages=frozenset(r["name"] for r in rows.get("package", ())),
                distributions=MappingProxyType(distributions),
                pins=MappingProxyType(pins),
                dependencies=MappingProxyType({k: tuple(v) for k, v in dependencies.items()}),
                version=self._snapshot.version + 1,
            )
            self._dependency_rows = {k: tuple(v) for k, v in dependency_rows.items()}
            self._distribution_ids = itertools.count(max(distributions, default=0) + 1)
            self._coord_ids = itertools.count(max(coords, default=0) + 1)
            self._pin_ids = itertools.count(max((p.pin_id for p in pins.values()), default=0) + 1)
            self._dependency_row_ids = itertools.count(
                max((i for ids in dependency_rows.values() for i in ids), default=0) + 1
            )

        logger.info(f"Restored {len(pins)} pins, {len(distributions)} distributions")
        return self._snapshot

    # =========================================================================
    # Packages
    # =========================================================================

    def create_package(self, name: str) -> str:
        """
        Create a package.

        Returns:
            The normalized package name

        Raises:
            MalformedPath: If the name is not a valid label
            DuplicatePackage: If the package already exists
        """
        name = normalize_package_name(name)
        with self._writing() as draft:
            if name in draft.base.packages:
                raise DuplicatePackage(f"Package already exists: {name}")
            draft.add_package(name)
            draft.record("package", AuditAction.INSERT, {"name": name})
        logger.info(f"Created package {name}")
        return name

    def has_package(self, name: str) -> bool:
        return name.strip().lower() in self._snapshot.packages

    def packages(self) -> list[str]:
        return sorted(self._snapshot.packages)

    # =========================================================================
    # Distributions
    # =========================================================================

    def create_distribution(self, package: str, version: str | Sequence[str]) -> Distribution:
        """
        Create an immutable distribution of a package.

        Raises:
            UnknownPackage: If the package does not exist
            MalformedDistribution: If the version has no labels or invalid labels
            DuplicateDistribution: If the (package, version) pair exists
        """
        package = normalize_package_name(package)
        version_labels = parse_version(version)

        with self._writing() as draft:
            if package not in draft.base.packages:
                raise UnknownPackage(f"No package exists named {package}")
            if (package, version_labels) in draft.base.distributions_by_key:
                raise DuplicateDistribution(
                    f"Distribution already exists: {package}-{'.'.join(version_labels)}"
                )
            distribution = Distribution(
                distribution_id=next(self._distribution_ids),
                package=package,
                version=version_labels,
            )
            draft.put_distribution(distribution)
            draft.record("distribution", AuditAction.INSERT, distribution.to_row())

        logger.info(f"Created distribution {distribution.name}")
        return distribution

    def find_distribution(self, package: str, version: str | Sequence[str]) -> Distribution | None:
        """Look up a distribution by package and version."""
        key = (normalize_package_name(package), parse_version(version))
        return self._snapshot.distributions_by_key.get(key)

    def get_distribution(self, distribution_id: int) -> Distribution | None:
        return self._snapshot.distributions.get(distribution_id)

    def distributions(self, package: str | None = None) -> list[Distribution]:
        """All distributions, optionally for one package, ordered by package then id."""
        dists = self._snapshot.distributions.values()
        if package is not None:
            package = normalize_package_name(package)
            dists = [d for d in dists if d.package == package]
        return sorted(dists, key=lambda d: (d.package, d.distribution_id))

    def resolve_distribution(self, ref: Distribution | int | str) -> Distribution:
        """Accept a Distribution, a distribution id, or a name like "maya-2018.sp3"."""
        snapshot = self._snapshot
        if isinstance(ref, Distribution):
            found = snapshot.distributions.get(ref.distribution_id)
            if found != ref:
                raise UnknownDistribution(f"Distribution not registered: {ref.name}")
            return found
        if isinstance(ref, int):
            found = snapshot.distributions.get(ref)
            if found is None:
                raise UnknownDistribution(f"No distribution with id {ref}")
            return found
        package, version = parse_distribution_name(ref)
        found = snapshot.distributions_by_key.get((package, version))
        if found is None:
            raise UnknownDistribution(f"No distribution named {ref}")
        return found

    # =========================================================================
    # Version pins
    # =========================================================================

    def _check_coordinate(self, coordinate: Coordinate) -> None:
        if coordinate.package not in self._snapshot.packages:
            raise UnknownPackage(f"No package exists named {coordinate.package}")
        for axis, path in coordinate.context.paths().items():
            if not self.hierarchy.exists(axis, path):
                raise UnknownPath(f"{axis.value} path not registered: {path}")

    @staticmethod
    def _check_package_match(coordinate: Coordinate, distribution: Distribution) -> None:
        if distribution.package != coordinate.package:
            raise PackageMismatch(
                f"Coordinate {coordinate} and distribution {distribution.name} "
                "must have the same package"
            )

    def upsert_version_pin(self, coordinate: Coordinate, distribution: Distribution | int | str) -> VersionPin:
        """
        Create the pin for a coordinate, or point the existing pin at a new distribution.

        The package invariant is checked on both branches before anything is
        committed. Upserting the distribution a pin already has is a no-op.

        Raises:
            UnknownPackage: If the coordinate's package does not exist
            UnknownPath: If any axis path of the coordinate is not registered
            UnknownDistribution: If the distribution reference does not exist
            PackageMismatch: If the distribution belongs to another package
        """
        dist = self.resolve_distribution(distribution)
        self._check_coordinate(coordinate)

        with self._lock_for(coordinate):
            existing = self._snapshot.pins.get(coordinate)

            if existing is None:
                self._check_package_match(coordinate, dist)
                with self._writing() as draft:
                    pin = VersionPin(
                        pin_id=next(self._pin_ids),
                        coord_id=next(self._coord_ids),
                        coordinate=coordinate,
                        distribution=dist,
                    )
                    draft.put_pin(pin)
                    draft.record("pincoord", AuditAction.INSERT, coordinate.to_row(pin.coord_id))
                    draft.record("versionpin", AuditAction.INSERT, pin.to_row())
                logger.info(f"Created version pin {pin.pin_id}: {pin}")
                return pin

            self._check_package_match(coordinate, dist)
            if existing.distribution == dist:
                logger.debug(f"Version pin {existing.pin_id} already at {dist.name}")
                return existing

            with self._writing() as draft:
                pin = replace(existing, distribution=dist)
                draft.put_pin(pin)
                draft.record(
                    "versionpin",
                    AuditAction.UPDATE,
                    existing.to_row(),
                    {"distribution": dist.distribution_id},
                )
            logger.info(
                f"Updated version pin {pin.pin_id}: {existing.distribution.name} -> {dist.name}"
            )
            return pin

    def update_version_pin(self, pin_id: int, distribution: Distribution | int | str) -> VersionPin:
        """
        Point an existing pin (by id) at a new distribution.

        Raises:
            UnknownVersionPin: If no pin has this id
            PackageMismatch: If the distribution belongs to another package
        """
        pin = self._snapshot.pin(pin_id)
        if pin is None:
            raise UnknownVersionPin(f"No version pin with id {pin_id}")
        return self.upsert_version_pin(pin.coordinate, distribution)

    def get_pin(self, pin_id: int) -> VersionPin | None:
        return self._snapshot.pin(pin_id)

    def find_pin(self, coordinate: Coordinate) -> VersionPin | None:
        return self._snapshot.pins.get(coordinate)

    def all_pins(self) -> list[VersionPin]:
        return sorted(self._snapshot.pins.values(), key=lambda p: p.pin_id)

    # =========================================================================
    # Dependencies
    # =========================================================================

    def set_dependencies(self, pin_id: int, names: Sequence[str]) -> list[Dependency]:
        """
        Replace a pin's dependency list.

        The new list fully replaces the old one; positions follow list order.

        Raises:
            UnknownVersionPin: If no pin has this id
            DuplicateDependency: If a package appears twice
            UnknownPackage: If a name is not a registered package
        """
        normalized = [normalize_package_name(n) for n in names]
        seen: set[str] = set()
        for name in normalized:
            if name in seen:
                raise DuplicateDependency(f"Package {name} listed more than once")
            seen.add(name)

        pin = self._snapshot.pin(pin_id)
        if pin is None:
            raise UnknownVersionPin(f"No version pin with id {pin_id}")

        with self._lock_for(pin.coordinate):
            # Dependency lists only change under the coordinate lock
            snapshot = self._snapshot
            unknown = [n for n in normalized if n not in snapshot.packages]
            if unknown:
                raise UnknownPackage(f"No package exists named {', '.join(unknown)}")

            old = snapshot.dependencies.get(pin_id, ())
            new = tuple(Dependency(package=n, position=i) for i, n in enumerate(normalized))
            if old == new:
                logger.debug(f"Dependencies of version pin {pin_id} unchanged")
                return list(new)

            with self._writing() as draft:
                old_rows = self._dependency_rows.get(pin_id, ())
                for row_id, dep in zip(old_rows, old):
                    draft.record("withpackage", AuditAction.DELETE, {
                        "id": row_id, "versionpin": pin_id,
                        "package": dep.package, "pinorder": dep.position,
                    })
                new_rows = tuple(next(self._dependency_row_ids) for _ in new)
                for row_id, dep in zip(new_rows, new):
                    draft.record("withpackage", AuditAction.INSERT, {
                        "id": row_id, "versionpin": pin_id,
                        "package": dep.package, "pinorder": dep.position,
                    })

                draft.put_dependencies(pin_id, new)
            self._dependency_rows[pin_id] = new_rows

        logger.info(f"Set dependencies of version pin {pin_id}: {normalized}")
        return list(new)

    def dependencies(self, pin_id: int) -> list[str]:
        """Ordered dependency package names of a pin."""
        snapshot = self._snapshot
        if snapshot.pin(pin_id) is None:
            raise UnknownVersionPin(f"No version pin with id {pin_id}")
        return snapshot.dependency_names(pin_id)

    def count(self) -> dict[str, int]:
        snapshot = self._snapshot
        return {
            "packages": len(snapshot.packages),
            "distributions": len(snapshot.distributions),
            "pins": len(snapshot.pins),
        }
