"""medcache - medication-combination analysis cache."""

from medcache.version import __version__

__all__ = ["__version__"]
