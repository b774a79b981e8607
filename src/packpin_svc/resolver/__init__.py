"""Pin resolution and dependency expansion."""

from .resolver import InvalidSearchMode, Resolver, SearchMode, rank, specificity_key
from .expander import DependencyExpander, DependencyResolution, Expansion

__all__ = [
    "InvalidSearchMode",
    "Resolver",
    "SearchMode",
    "rank",
    "specificity_key",
    "DependencyExpander",
    "DependencyResolution",
    "Expansion",
]
