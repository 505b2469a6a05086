from __future__ import annotations

"""Key-value slots for JSON-serializable values.

The session snapshot, flagged registry and weak-topic weights each live under
one key. Only their adapters in ``persistence`` touch these stores.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Protocol


class StorageWriteError(Exception):
    """Raised when a value cannot be written (disk full, permissions, unserializable)."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; values are JSON round-tripped so callers never share objects."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise StorageWriteError(f"Value for {key!r} is not JSON-serializable: {exc}") from exc

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonDirectoryStore:
    """One ``<key>.json`` file per key under ``root``.

    Writes go to a temp file first and are moved into place with
    ``os.replace``, so a crash mid-write leaves the previous value intact.
    Unreadable files read as absent.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.root / f"{safe}.json"

    def get(self, key: str) -> Optional[Any]:
        p = self._path(key)
        if not p.exists():
            return None
        try:
            with p.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError):
            return None

    def set(self, key: str, value: Any) -> None:
        p = self._path(key)
        tmp = p.with_suffix(".json.tmp")
        try:
            text = json.dumps(value, separators=(",", ":"))
            self.root.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, p)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageWriteError(f"Failed to write {key!r} to {p}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageWriteError(f"Failed to delete {key!r}: {exc}") from exc
