"""Key-value storage backing records, branding, users and the session."""

from __future__ import annotations

import json
import os
import tempfile
from typing import Any, Dict, Optional

from ..logging import get_logger

LOG = get_logger("storage")


class SessionStorage:
    """In-memory string store; lives as long as the process (one session)."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class LocalStorage(SessionStorage):
    """Durable string store persisted as a single JSON object file.

    A missing or unreadable file starts the store empty; it never raises
    on load. Every write rewrites the whole file atomically.
    """

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = os.path.abspath(path)
        self._items = self._load()

    def _load(self) -> Dict[str, str]:
        if not os.path.isfile(self.path):
            LOG.debug(f"No storage file at {self.path}; starting empty")
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            LOG.warning(f"Storage file {self.path} unreadable ({exc}); starting empty")
            return {}
        if not isinstance(data, dict):
            LOG.warning(f"Storage file {self.path} is not a JSON object; starting empty")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        folder = os.path.dirname(self.path)
        os.makedirs(folder, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".storage-", suffix=".json", dir=folder)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._items, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def set_item(self, key: str, value: str) -> None:
        super().set_item(key, value)
        self._flush()

    def remove_item(self, key: str) -> None:
        if key in self._items:
            super().remove_item(key)
            self._flush()


def read_json(storage: SessionStorage, key: str, default: Any = None) -> Any:
    """Decode a JSON value; missing keys and malformed JSON give ``default``."""
    raw = storage.get_item(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        LOG.warning(f"Discarding malformed JSON under key {key!r}")
        return default


def write_json(storage: SessionStorage, key: str, value: Any) -> None:
    storage.set_item(key, json.dumps(value, ensure_ascii=False))
