"""Registry entity types - packages, distributions, coordinates and pins."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..paths.parser import MalformedPath, parse_label_path, validate_label
from ..paths.types import Axis, LabelPath


def normalize_package_name(name: str) -> str:
    """Lower-case and validate a package name (a single label).

    Raises:
        MalformedPath: If the name is empty or has invalid characters
    """
    clean = (name or "").strip().lower()
    if not validate_label(clean):
        raise MalformedPath(
            f"Invalid package name: '{name}'. "
            "Package names contain only letters, digits, or underscores."
        )
    return clean


@dataclass(frozen=True, slots=True)
class Context:
    """A point in the four-axis hierarchy, without a package."""
    role: LabelPath
    level: LabelPath
    site: LabelPath
    platform: LabelPath

    @classmethod
    def parse(
        cls,
        role: str | LabelPath | None = None,
        level: str | LabelPath | None = None,
        site: str | LabelPath | None = None,
        platform: str | LabelPath | None = None,
    ) -> Context:
        """Normalize raw axis values; missing values default to the axis root."""
        return cls(
            role=parse_label_path(Axis.ROLE, role),
            level=parse_label_path(Axis.LEVEL, level),
            site=parse_label_path(Axis.SITE, site),
            platform=parse_label_path(Axis.PLATFORM, platform),
        )

    @classmethod
    def root(cls) -> Context:
        return cls.parse()

    def paths(self) -> dict[Axis, LabelPath]:
        return {
            Axis.ROLE: self.role,
            Axis.LEVEL: self.level,
            Axis.SITE: self.site,
            Axis.PLATFORM: self.platform,
        }

    def contains(self, other: Context) -> bool:
        """Ancestor-or-equal of ``other`` on every axis."""
        return (
            self.level.contains(other.level)
            and self.role.contains(other.role)
            and self.platform.contains(other.platform)
            and self.site.contains(other.site)
        )

    def __str__(self) -> str:
        return (
            f"(level:{self.level} role:{self.role} "
            f"platform:{self.platform} site:{self.site})"
        )


@dataclass(frozen=True, slots=True)
class Distribution:
    """An immutable (package, version) identity."""
    distribution_id: int
    package: str
    version: tuple[str, ...]

    @property
    def version_str(self) -> str:
        return ".".join(self.version)

    @property
    def name(self) -> str:
        """Display name, e.g. maya-2018.sp3"""
        return f"{self.package}-{self.version_str}"

    def __str__(self) -> str:
        return self.name

    def to_row(self) -> dict[str, Any]:
        return {"id": self.distribution_id, "package": self.package, "version": self.version_str}


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A pinning context: four axis paths plus a package."""
    package: str
    role: LabelPath
    level: LabelPath
    site: LabelPath
    platform: LabelPath

    @classmethod
    def build(
        cls,
        package: str,
        role: str | LabelPath | None = None,
        level: str | LabelPath | None = None,
        site: str | LabelPath | None = None,
        platform: str | LabelPath | None = None,
    ) -> Coordinate:
        """Build a coordinate from raw values; missing axes default to the root."""
        return cls.from_context(normalize_package_name(package), Context.parse(role, level, site, platform))

    @classmethod
    def from_context(cls, package: str, context: Context) -> Coordinate:
        return cls(
            package=package,
            role=context.role,
            level=context.level,
            site=context.site,
            platform=context.platform,
        )

    @property
    def context(self) -> Context:
        return Context(role=self.role, level=self.level, site=self.site, platform=self.platform)

    def __str__(self) -> str:
        return f"{self.package} @ {self.context}"

    def to_row(self, coord_id: int) -> dict[str, Any]:
        return {
            "id": coord_id,
            "role": str(self.role),
            "level": str(self.level),
            "site": str(self.site),
            "platform": str(self.platform),
            "package": self.package,
        }


@dataclass(frozen=True, slots=True)
class VersionPin:
    """Binding of a coordinate to a distribution."""
    pin_id: int
    coord_id: int
    coordinate: Coordinate
    distribution: Distribution

    @property
    def package(self) -> str:
        return self.coordinate.package

    def __str__(self) -> str:
        return f"{self.distribution.name} @ {self.coordinate.context}"

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.pin_id,
            "coord": self.coord_id,
            "distribution": self.distribution.distribution_id,
        }


@dataclass(frozen=True, slots=True)
class Dependency:
    """One entry of a pin's ordered dependency list. Name only, no version."""
    package: str
    position: int
