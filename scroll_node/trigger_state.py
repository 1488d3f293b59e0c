"""JSON file persistence for trigger cursors and session keys."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class JsonStateStore:
    """A JSON object on disk, keyed by name.

    A missing file reads as an empty mapping; writes create parent directories.
    """

    def __init__(self, path: str | Path, *, private: bool = False) -> None:
        self.path = Path(path).expanduser().resolve()
        self.private = private

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as err:
            raise ValueError(f"state file {self.path} is not valid JSON: {err}") from err
        if not isinstance(data, dict):
            raise ValueError(f"state file {self.path} must contain a JSON object")
        return data

    def save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        if self.private:
            os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)
        logger.debug("saved %d entries to %s", len(data), self.path)

    def get(self, key: str) -> dict[str, Any]:
        value = self.load().get(key)
        return dict(value) if isinstance(value, dict) else {}

    def put(self, key: str, value: dict[str, Any]) -> None:
        data = self.load()
        data[key] = value
        self.save(data)
