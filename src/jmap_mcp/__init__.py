"""jmap-mcp package."""

from importlib.metadata import PackageNotFoundError, version as _version

__all__ = ["__version__"]
try:
    __version__ = _version("jmap-mcp")
except PackageNotFoundError:
    __version__ = "0.0.0"
