"""
In-Memory Snapshot Repository
=============================

Keeps deep copies of the persisted documents in process memory. Used as the
test double for the JSON file backend and for throwaway local runs.
"""

import copy
from typing import Any

from .repositories import SnapshotRepository


class InMemoryRepository(SnapshotRepository):
    """Snapshot repository backed by two dicts.

    ``save_count`` records how many writes happened, so callers can assert
    that no-op operations do not flush.
    """

    def __init__(
        self,
        tokens: dict[str, Any] | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        self._tokens: dict[str, Any] = copy.deepcopy(tokens or {})
        self._config: dict[str, Any] = copy.deepcopy(config or {})
        self.save_count = 0

    def load_tokens(self) -> dict[str, Any]:
        return copy.deepcopy(self._tokens)

    def save_tokens(self, tokens: dict[str, Any]) -> None:
        self._tokens = copy.deepcopy(tokens)
        self.save_count += 1

    def load_config(self) -> dict[str, Any]:
        return copy.deepcopy(self._config)

    def save_config(self, config: dict[str, Any]) -> None:
        self._config = copy.deepcopy(config)
        self.save_count += 1

    def describe(self) -> dict[str, Any]:
        return {"backend": "memory"}
