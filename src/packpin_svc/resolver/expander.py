"""Dependency expansion - resolve a pin's dependencies under the same context."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..pins.registry import RegistrySnapshot
from ..pins.types import Context, VersionPin
from .resolver import Resolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DependencyResolution:
    """Outcome for one dependency; pin is None when nothing matched."""
    package: str
    pin: VersionPin | None = None

    @property
    def found(self) -> bool:
        return self.pin is not None


@dataclass(frozen=True, slots=True)
class Expansion:
    """A resolved root pin together with its resolved dependencies."""
    root: VersionPin
    context: Context
    dependencies: list[DependencyResolution] = field(default_factory=list)

    @property
    def missing(self) -> list[str]:
        return [d.package for d in self.dependencies if not d.found]


class DependencyExpander:
    """
    Resolves each dependency of a pin in ancestor mode, per call.

    Dependency lists hold names only; their versions are looked up fresh on
    every expansion, so the same list can expand differently in another
    context or after the registry changes.
    """

    def __init__(self, resolver: Resolver) -> None:
        self.resolver = resolver

    def expand(
        self,
        pin: VersionPin,
        context: Context | None = None,
        snapshot: RegistrySnapshot | None = None,
    ) -> list[DependencyResolution]:
        """
        Resolve every dependency of ``pin`` under ``context``.

        Args:
            pin: The root version pin
            context: Request context; defaults to the pin's own coordinate
            snapshot: Registry state to read; defaults to the latest one

        Returns:
            One entry per dependency, in list order. Unresolvable dependencies
            carry pin=None rather than failing the expansion.
        """
        context = context if context is not None else pin.coordinate.context
        snapshot = snapshot if snapshot is not None else self.resolver.registry.snapshot()

        results = []
        for name in snapshot.dependency_names(pin.pin_id):
            dep_pin = self.resolver.find(name, context, snapshot)
            if dep_pin is None:
                logger.debug(f"Dependency {name} of {pin.distribution.name} not found at {context}")
            results.append(DependencyResolution(package=name, pin=dep_pin))
        return results

    def expand_package(
        self,
        package: str,
        context: Context,
        snapshot: RegistrySnapshot | None = None,
    ) -> Expansion | None:
        """
        Resolve a package and expand its dependencies; None if the package has no pin.

        The root and every dependency are read from one snapshot.
        """
        snapshot = snapshot if snapshot is not None else self.resolver.registry.snapshot()
        root = self.resolver.find(package, context, snapshot)
        if root is None:
            return None
        return Expansion(root=root, context=context, dependencies=self.expand(root, context, snapshot))
