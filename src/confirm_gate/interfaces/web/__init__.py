"""HTTP interface."""

from .server import WebInterface, create_app

__all__ = ["WebInterface", "create_app"]
