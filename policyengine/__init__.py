"""Policy engine: rule evaluation over parsed symbol models."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("policy-engine")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0-dev"

__all__ = ["__version__"]
