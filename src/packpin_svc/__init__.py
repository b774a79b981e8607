"""Package version pin service.

Resolves which distribution of a package is authorized in a context of
role, level, site and platform, expands pinned dependencies under the
same context, and rebuilds audited changes into revisions.
"""

from .service import PinService
from .config import Config

__version__ = "0.1.0"

__all__ = ["PinService", "Config", "__version__"]
