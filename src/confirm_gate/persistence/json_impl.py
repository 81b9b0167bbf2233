"""JSON file persistence — one document per file, atomic writes."""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

from confirm_gate.core.structured_logger import get_logger

from .repositories import SnapshotRepository

logger = get_logger("JsonFileRepository")


class JsonFileRepository(SnapshotRepository):
    """Stores the token map and account config as two JSON files.

    Writes go to a temp file in the target directory, are fsynced and then
    renamed over the original. Unreadable files are moved to ``*.json.bak``
    and treated as empty so the service always starts.
    """

    def __init__(self, tokens_path: Path | str, config_path: Path | str) -> None:
        self.tokens_path = Path(tokens_path)
        self.config_path = Path(config_path)

    def load_tokens(self) -> dict[str, Any]:
        return self._load(self.tokens_path)

    def save_tokens(self, tokens: dict[str, Any]) -> None:
        self._save(self.tokens_path, tokens)

    def load_config(self) -> dict[str, Any]:
        return self._load(self.config_path)

    def save_config(self, config: dict[str, Any]) -> None:
        self._save(self.config_path, config)

    def describe(self) -> dict[str, Any]:
        return {
            "backend": "json",
            "tokens_path": str(self.tokens_path),
            "config_path": str(self.config_path),
        }

    def _load(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Failed to decode %s (corrupt file): %s", path, e)
            self._quarantine(path)
            return {}
        except OSError as e:
            logger.error("Failed to read %s, starting fresh: %s", path, e)
            return {}

        if not isinstance(data, dict):
            logger.error("Unexpected document type in %s: %s", path, type(data).__name__)
            self._quarantine(path)
            return {}

        logger.info("Loaded %s", path.name, entries=len(data))
        return data

    @staticmethod
    def _quarantine(path: Path) -> None:
        bak_path = path.with_suffix(".json.bak")
        try:
            path.rename(bak_path)
            logger.warning("Renamed corrupt %s to %s for inspection", path.name, bak_path)
        except OSError as rename_err:
            logger.error("Could not rename corrupt file: %s", rename_err)

    @staticmethod
    def _save(path: Path, data: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)

        temp_fd, temp_path = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.stem}_tmp_", suffix=".json"
        )
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())

            shutil.move(temp_path, path)
        except Exception:
            if Path(temp_path).exists():
                Path(temp_path).unlink()
            raise
