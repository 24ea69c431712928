"""
ProductSync - keep installed-product registry metadata in step with the
version actually on disk.

Read the true version, encode it the legacy installer way, fix what drifted.
"""

from importlib.metadata import version as _version

__version__ = _version("productsync")
