"""Configuration — pydantic settings for confirm-gate."""

from .settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
