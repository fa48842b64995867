"""Process-wide persisted key-value state.

A flat mapping of string keys to YAML-serializable values, written to
``<state_dir>/state.yaml`` on every update. Key order is insertion order,
so enumeration is stable across reloads.
"""

import logging
import threading
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class GlobalState:
    """Persisted key-value store (the editor's global state)."""

    def __init__(self, path: Path | None = None):
        self._path = path
        self._data: dict[str, Any] | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path | None:
        return self._path

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data

        data: dict[str, Any] = {}
        if self._path is not None and self._path.exists():
            with open(self._path) as f:
                loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                data = {str(k): v for k, v in loaded.items()}
            else:
                logger.warning("Ignoring malformed state file %s", self._path)
        self._data = data
        return data

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            yaml.safe_dump(self._data, f, default_flow_style=False, sort_keys=False)

    def keys(self) -> list[str]:
        """All keys, in insertion order."""
        with self._lock:
            return list(self._load().keys())

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def update(self, key: str, value: Any) -> None:
        """Set ``key`` to ``value``; ``None`` deletes the key."""
        with self._lock:
            data = self._load()
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
            self._save()
