"""fluocorr: self-absorption corrections for fluorescence XAS."""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__ = version("fluocorr")
except PackageNotFoundError:  # running from a source checkout
    __version__ = "0.1.0"
