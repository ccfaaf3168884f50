"""SmartFlow backend: interactive video flows served over HTTP and websockets."""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__", "DIST_NAME"]

DIST_NAME = "smartflow-server"

# Source checkouts that were never installed report a local dev version.
try:
	__version__ = version(DIST_NAME)
except PackageNotFoundError:
	__version__ = "0.0.0+local"
