"""Axis label paths and the path hierarchy."""

from .types import Axis, LabelPath
from .parser import MalformedPath, parse_axis, parse_label_path, parse_registrable_path
from .registry import PathHierarchy

__all__ = [
    "Axis",
    "LabelPath",
    "MalformedPath",
    "parse_axis",
    "parse_label_path",
    "parse_registrable_path",
    "PathHierarchy",
]
