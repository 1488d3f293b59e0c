"""Local registry of session keys and the transactions they signed."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any

from .trigger_state import JsonStateStore

DEFAULT_SESSION_STORE = Path("~/.scroll-node/sessions.json")
SESSION_STORE_ENV_VAR = "SCROLL_NODE_SESSION_STORE"


class SessionStore:
    def __init__(self, path: str | Path = DEFAULT_SESSION_STORE) -> None:
        self._store = JsonStateStore(path, private=True)

    @property
    def path(self) -> Path:
        return self._store.path

    def _key(self, address: str) -> str:
        return address.lower()

    def add(self, record: dict[str, Any]) -> None:
        self._store.put(self._key(record["address"]), record)

    def get(self, address: str) -> dict[str, Any] | None:
        record = self._store.get(self._key(address))
        return record or None

    def require(self, address: str) -> dict[str, Any]:
        record = self.get(address)
        if record is None:
            raise ValueError(f"Unknown session key: {address}")
        return record

    def update(self, address: str, **changes: Any) -> dict[str, Any]:
        record = self.require(address)
        record.update(changes)
        self._store.put(self._key(address), record)
        return record

    def append_transaction(self, address: str, entry: dict[str, Any]) -> None:
        record = self.require(address)
        record.setdefault("transactions", []).append(entry)
        self._store.put(self._key(address), record)

    def all(self) -> list[dict[str, Any]]:
        return [value for value in self._store.load().values() if isinstance(value, dict)]


def is_session_active(record: dict[str, Any], now: float | None = None) -> bool:
    if record.get("revoked"):
        return False
    valid_until = record.get("valid_until")
    if valid_until is None:
        return True
    return (time.time() if now is None else now) < int(valid_until)
