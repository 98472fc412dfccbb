"""PostgreSQL wire protocol front end for the Logfire query API."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("logfire-pg")
except PackageNotFoundError:
    __version__ = "dev"
