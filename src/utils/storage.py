from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from utils.logger import get_logger

_logger = get_logger(__name__)


class LocalStorage:
    """
    Device-local key/value store, the terminal stand-in for a browser's localStorage.

    Values are strings. The whole store is one JSON object on disk and is rewritten
    on every mutation (last writer wins, no locking). With ``path=None`` the store
    lives in memory only, which is what the tests use.

    ``read_versioned``/``write_versioned`` wrap a value in ``{"version", "data"}``.
    A payload whose version differs from the caller's, or that is not an envelope
    at all, is removed and reported as missing: reject-and-reset.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self._items: Dict[str, str] = {}
        if path and os.path.exists(path):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    raw = json.load(f)
                if isinstance(raw, dict):
                    self._items = {str(k): str(v) for k, v in raw.items()}
                else:
                    _logger.warning(f"Ignoring unreadable storage file {path}.")
            except (OSError, ValueError) as e:
                _logger.warning(f"Ignoring unreadable storage file {path}: {e}")

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()

    def clear(self) -> None:
        self._items.clear()
        self._flush()

    def keys(self):
        return list(self._items.keys())

    def read_versioned(self, key: str, version: int) -> Optional[Any]:
        """Return the data stored under key if it was written with this schema version."""
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            envelope = json.loads(raw)
        except ValueError:
            envelope = None

        if (
            not isinstance(envelope, dict)
            or envelope.get("version") != version
            or "data" not in envelope
        ):
            _logger.info(f"Discarding '{key}': stored schema does not match v{version}.")
            self.remove_item(key)
            return None
        return envelope["data"]

    def write_versioned(self, key: str, version: int, data: Any) -> None:
        self.set_item(key, json.dumps({"version": version, "data": data}))

    def _flush(self) -> None:
        if not self.path:
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._items, f)
        os.replace(tmp_path, self.path)
