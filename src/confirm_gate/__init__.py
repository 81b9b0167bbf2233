"""confirm-gate — out-of-band human confirmation for risky agent actions."""

from importlib import metadata

try:
    __version__ = metadata.version("confirm-gate")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0-dev"
