"""
Registry serializer.

Save registry contents to the YAML format read by RegistryLoader.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from ..paths.types import Axis
from .registry import PinRegistry


def registry_to_dict(registry: PinRegistry) -> dict[str, Any]:
    """
    Build the loader structure for a registry.

    Paths are emitted without their axis root, and root axes are omitted
    from pins.
    """
    snapshot = registry.snapshot()

    paths = {}
    for axis in Axis:
        leaves = [
            ".".join(p.labels[1:]) for p in registry.hierarchy.all_paths(axis)
            if not p.is_root and not registry.hierarchy.children(axis, p)
        ]
        if leaves:
            paths[axis.value] = leaves

    distributions: dict[str, list[str]] = {}
    for dist in registry.distributions():
        distributions.setdefault(dist.package, []).append(dist.version_str)

    pins = []
    for pin in registry.all_pins():
        pin_data: dict[str, Any] = {"distribution": pin.distribution.name}
        for axis, path in pin.coordinate.context.paths().items():
            if not path.is_root:
                pin_data[axis.value] = ".".join(path.labels[1:])
        withs = snapshot.dependency_names(pin.pin_id)
        if withs:
            pin_data["withs"] = withs
        pins.append(pin_data)

    return {
        "paths": paths,
        "packages": registry.packages(),
        "distributions": distributions,
        "pins": pins,
    }


def save_registry_to_yaml(registry: PinRegistry, file_path: str | Path) -> None:
    """
    Save a registry to a YAML file.

    Args:
        registry: The registry to export
        file_path: Path to write the YAML file
    """
    data = registry_to_dict(registry)

    path = Path(file_path)
    with open(path, "w", encoding="utf-8") as f:
        f.write("# Package version pins\n\n")
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
