"""
Persistence Layer
=================

Snapshot repositories for the token map and the account configuration.
Swap the JSON file backend for the in-memory one in tests.
"""

from .inmemory_impl import InMemoryRepository
from .json_impl import JsonFileRepository
from .repositories import SnapshotRepository

__all__ = [
    "InMemoryRepository",
    "JsonFileRepository",
    "SnapshotRepository",
]
