"""Label path parsing utilities."""

from __future__ import annotations

import re

from .types import Axis, LabelPath


class MalformedPath(ValueError):
    """Raised when text cannot be normalized into a valid label path."""
    pass


# Valid label: lowercase alphanumerics and underscores
LABEL_PATTERN = re.compile(r"^[a-z0-9_]+$")

MAX_LABEL_LENGTH = 256


def validate_label(label: str) -> bool:
    """Check if a single label is valid."""
    if not label:
        return False
    if len(label) > MAX_LABEL_LENGTH:
        return False
    return bool(LABEL_PATTERN.match(label))


def _normalize_text(axis: Axis, text: str) -> str:
    clean = text.strip().lower()
    if axis is Axis.PLATFORM:
        # platform names carry underscores (cent7_64), spaces join words
        return re.sub(r"\s+", "_", clean)
    # role, level and site use '_' as an alternate separator: model_beta -> model.beta
    return re.sub(r"\s+", "", clean).replace("_", ".")


def parse_axis(axis: Axis | str) -> Axis:
    """Resolve an axis name (case-insensitive) to an Axis."""
    if isinstance(axis, Axis):
        return axis
    try:
        return Axis(str(axis).strip().lower())
    except ValueError:
        raise MalformedPath(f"Unknown axis: '{axis}'") from None


def split_labels(text: str, *, separators: str = ".") -> list[str]:
    """Split text on any of the separator characters, validating each label.

    Raises:
        MalformedPath: If any label is empty or contains invalid characters
    """
    pattern = "[" + re.escape(separators) + "]"
    labels = re.split(pattern, text)
    for label in labels:
        if not validate_label(label):
            raise MalformedPath(
                f"Invalid label '{label}' in '{text}'. "
                "Labels must be non-empty and contain only letters, digits, or underscores."
            )
    return labels


def parse_label_path(axis: Axis | str, text: str | LabelPath | None) -> LabelPath:
    """
    Normalize text into a LabelPath on the given axis.

    The axis root is optional in the input; ``bayou`` and ``facility.bayou``
    both parse to the level path ``facility.bayou``. Empty input yields the
    root itself.

    Args:
        axis: Axis (or axis name) the path belongs to
        text: Raw text, an existing LabelPath, or None

    Returns:
        LabelPath instance

    Raises:
        MalformedPath: If the text is not a valid path
    """
    axis = parse_axis(axis)

    if isinstance(text, LabelPath):
        if text.axis is not axis:
            raise MalformedPath(f"Path '{text}' belongs to axis {text.axis.value}, not {axis.value}")
        return text

    if text is None:
        return LabelPath.root(axis)

    clean = _normalize_text(axis, text)
    if not clean:
        return LabelPath.root(axis)

    labels = split_labels(clean)
    if labels[0] != axis.root:
        labels.insert(0, axis.root)
    return LabelPath(axis, tuple(labels))


def parse_registrable_path(axis: Axis | str, text: str | LabelPath | None) -> LabelPath:
    """Parse a path and enforce the axis depth policy used at registration.

    Raises:
        MalformedPath: If the text is malformed or the depth is out of bounds
    """
    path = parse_label_path(axis, text)
    axis = path.axis
    if path.depth < axis.min_depth:
        raise MalformedPath(
            f"{axis.value} path '{path}' has depth {path.depth}; "
            f"at least {axis.min_depth} required"
        )
    if axis.max_depth is not None and path.depth > axis.max_depth:
        raise MalformedPath(
            f"{axis.value} path '{path}' has depth {path.depth}; "
            f"at most {axis.max_depth} allowed"
        )
    return path
