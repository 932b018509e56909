"""Key-value document stores for whole-collection persistence.

Each owner (deal store, moderation guard, notification dispatcher) keeps
its collection under one namespaced key. Collections are loaded whole on
startup and overwritten whole on every mutation. There are no
incremental updates.

Two backends:
- InMemoryStore: for tests and ephemeral sessions.
- JsonFileStore: one JSON file per key in a directory. Writes go to a
  temporary file that is atomically renamed over the target, so a crash
  mid-write leaves the previous collection intact.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional, Protocol


Records = list[dict[str, Any]]

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.\-]+$")


class KeyValueStore(Protocol):
    """Storage boundary. Implementations raise OSError on I/O failure."""

    def load(self, key: str) -> Optional[Records]:
        ...

    def save(self, key: str, records: Records) -> None:
        ...


class InMemoryStore:
    """Dictionary-backed store. Stores deep copies via JSON round-trip."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def load(self, key: str) -> Optional[Records]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def save(self, key: str, records: Records) -> None:
        self._data[key] = json.dumps(records, sort_keys=True, ensure_ascii=False)

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonFileStore:
    """Directory of JSON files, one per key."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Unsafe storage key: {key!r}")
        return self._directory / f"{key}.json"

    def load(self, key: str) -> Optional[Records]:
        path = self.path_for(key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"Corrupt collection at {path}: expected a JSON list")
        return data

    def save(self, key: str, records: Records) -> None:
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{key}.", suffix=".tmp", dir=self._directory,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, sort_keys=True, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
