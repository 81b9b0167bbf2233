"""
Abstract Repository Interfaces
================================

Defines the load/save contract for the two persisted documents: the token
map and the account configuration. Both are plain JSON-serializable dicts;
the core owns their shape, the repository only stores them.
"""

from abc import ABC, abstractmethod
from typing import Any


class SnapshotRepository(ABC):
    """
    Abstract interface for snapshot persistence.

    Implementations:
    - JsonFileRepository: two JSON files written atomically
    - InMemoryRepository: process-local dicts, used by tests
    """

    @abstractmethod
    def load_tokens(self) -> dict[str, Any]:
        """Return the persisted token map, or an empty dict"""

    @abstractmethod
    def save_tokens(self, tokens: dict[str, Any]) -> None:
        """Replace the persisted token map"""

    @abstractmethod
    def load_config(self) -> dict[str, Any]:
        """Return the persisted account config, or an empty dict"""

    @abstractmethod
    def save_config(self, config: dict[str, Any]) -> None:
        """Replace the persisted account config"""

    def describe(self) -> dict[str, Any]:
        """Backend details for health output"""
        return {"backend": self.__class__.__name__}
