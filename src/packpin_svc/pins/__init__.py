"""Packages, distributions and version pins."""

from .types import Context, Coordinate, Dependency, Distribution, VersionPin, normalize_package_name
from .registry import (
    DuplicateDependency,
    DuplicateDistribution,
    DuplicatePackage,
    MalformedDistribution,
    PackageMismatch,
    PinRegistry,
    RegistryError,
    RegistrySnapshot,
    UnknownDistribution,
    UnknownPackage,
    UnknownPath,
    UnknownVersionPin,
    parse_distribution_name,
    parse_version,
)
from .loader import RegistryLoader
from .serializer import registry_to_dict, save_registry_to_yaml

__all__ = [
    "Context",
    "Coordinate",
    "Dependency",
    "Distribution",
    "VersionPin",
    "normalize_package_name",
    "DuplicateDependency",
    "DuplicateDistribution",
    "DuplicatePackage",
    "MalformedDistribution",
    "PackageMismatch",
    "PinRegistry",
    "RegistryError",
    "RegistrySnapshot",
    "UnknownDistribution",
    "UnknownPackage",
    "UnknownPath",
    "UnknownVersionPin",
    "parse_distribution_name",
    "parse_version",
    "RegistryLoader",
    "registry_to_dict",
    "save_registry_to_yaml",
]
