"""Installed distribution version, falling back to the engine constant."""

from importlib.metadata import PackageNotFoundError, version

from .main import kdbxdecode

try:
    __version__ = version("kdbxdecode")
except PackageNotFoundError:
    __version__ = kdbxdecode.ENGINE_VERSION


__all__ = ["__version__"]
