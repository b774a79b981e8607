"""Registry loader - loads paths, packages, distributions and pins from YAML."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from ..paths.parser import parse_label_path
from ..paths.types import Axis
from .registry import PinRegistry, parse_distribution_name
from .types import Coordinate

logger = logging.getLogger(__name__)


class RegistryLoader:
    """
    Loads registry definitions from YAML or JSON files into a PinRegistry.

    File format:
    ```yaml
    paths:
      role: [model, model.beta]
      level: [bayou, bayou.rd]
      site: [portland]
      platform: [cent7_64]

    packages: [maya, houdini, vray]

    distributions:
      maya: ["2018.sp3", "2019"]
      houdini: ["17.5"]

    pins:
      - distribution: maya-2018.sp3
        level: bayou
        withs: [houdini]
      - distribution: maya-2019
        level: bayou.rd
        role: model
    ```

    Loading merges into whatever the registry already holds: existing
    packages and distributions are reused, existing pins are upserted.
    Axis paths used by a pin are registered if missing. Versions should be
    quoted so YAML keeps them as strings.
    """

    def __init__(self, registry: PinRegistry) -> None:
        self.registry = registry

    def load_file(self, path: str | Path) -> dict[str, int]:
        """Load definitions from a YAML or JSON file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Registry file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                import json
                data = json.load(f)

        return self.load_dict(data or {})

    def load_dict(self, data: dict[str, Any]) -> dict[str, int]:
        """
        Load definitions from a dictionary, all in one audit transaction.

        Returns:
            Counts of what was loaded, by section
        """
        counts = {"paths": 0, "packages": 0, "distributions": 0, "pins": 0}

        with self.registry.transaction():
            for axis_name, paths in (data.get("paths") or {}).items():
                for text in paths or []:
                    self.registry.hierarchy.register(axis_name, str(text))
                    counts["paths"] += 1

            for name in data.get("packages") or []:
                self._ensure_package(str(name))
                counts["packages"] += 1

            for package, versions in (data.get("distributions") or {}).items():
                self._ensure_package(str(package))
                for version in versions or []:
                    self._ensure_distribution(str(package), str(version))
                    counts["distributions"] += 1

            for pin_data in data.get("pins") or []:
                self._load_pin(pin_data)
                counts["pins"] += 1

        logger.info(
            f"Loaded {counts['pins']} pins, {counts['distributions']} distributions, "
            f"{counts['packages']} packages, {counts['paths']} paths"
        )
        return counts

    def _ensure_package(self, name: str) -> None:
        if not self.registry.has_package(name):
            self.registry.create_package(name)

    def _ensure_distribution(self, package: str, version: str) -> None:
        if self.registry.find_distribution(package, version) is None:
            self.registry.create_distribution(package, version)

    def _load_pin(self, data: dict[str, Any]) -> None:
        """Parse a single pin entry and upsert it."""
        dist_package, version = parse_distribution_name(str(data["distribution"]))
        package = str(data.get("package", dist_package))

        self._ensure_package(dist_package)
        self._ensure_distribution(dist_package, ".".join(version))

        # Register any non-root axis path the pin uses
        values = {}
        for axis in Axis:
            raw = data.get(axis.value)
            path = parse_label_path(axis, None if raw is None else str(raw))
            if not path.is_root:
                self.registry.hierarchy.register(axis, path)
            values[axis.value] = path

        coordinate = Coordinate.build(package, **values)
        distribution = self.registry.find_distribution(dist_package, ".".join(version))
        pin = self.registry.upsert_version_pin(coordinate, distribution)

        withs = data.get("withs")
        if withs is not None:
            for name in withs:
                self._ensure_package(str(name))
            self.registry.set_dependencies(pin.pin_id, [str(n) for n in withs])

        logger.debug(f"Loaded pin: {pin}")
