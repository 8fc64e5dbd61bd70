"""
Settings Store - persistent string/int settings keyed by (section, key).

Backed by a JSON file on disk. Without a path the store is purely in
memory, which is what tests and throwaway sessions use. Changes are only
written on commit().
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class SettingsStore:
    """Sectioned key/value settings persisted as a JSON document."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._data: dict[str, dict[str, object]] = {}
        self._dirty = False
        self._lock = threading.Lock()
        if self.path is not None:
            self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load settings from {self.path}: {e}")
            return

        if not isinstance(data, dict):
            logger.error(f"Settings file {self.path} is not a JSON object, ignoring")
            return
        self._data = {
            section: dict(values)
            for section, values in data.items()
            if isinstance(values, dict)
        }

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def get_string(self, section: str, key: str, default: str = "") -> str:
        with self._lock:
            value = self._data.get(section, {}).get(key)
        return value if isinstance(value, str) else default

    def set_string(self, section: str, key: str, value: str) -> None:
        self._set(section, key, str(value))

    def get_int(self, section: str, key: str, default: int = 0) -> int:
        with self._lock:
            value = self._data.get(section, {}).get(key)
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value)
            except ValueError:
                return default
        return default

    def set_int(self, section: str, key: str, value: int) -> None:
        self._set(section, key, int(value))

    def get_bool(self, section: str, key: str, default: bool = False) -> bool:
        with self._lock:
            value = self._data.get(section, {}).get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return default

    def set_bool(self, section: str, key: str, value: bool) -> None:
        self._set(section, key, bool(value))

    def delete(self, section: str, key: str) -> None:
        with self._lock:
            values = self._data.get(section)
            if values is not None and key in values:
                del values[key]
                self._dirty = True

    def _set(self, section: str, key: str, value) -> None:
        with self._lock:
            values = self._data.setdefault(section, {})
            if values.get(key) != value or key not in values:
                values[key] = value
                self._dirty = True

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def commit(self) -> bool:
        """Write pending changes to disk. Returns False on write failure."""
        with self._lock:
            if not self._dirty:
                return True
            if self.path is None:
                self._dirty = False
                return True
            snapshot = json.dumps(self._data, indent=2, sort_keys=True)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(snapshot)
            tmp_path.replace(self.path)
        except OSError as e:
            logger.error(f"Failed to save settings to {self.path}: {e}")
            return False

        with self._lock:
            self._dirty = False
        logger.debug(f"Settings committed to {self.path}")
        return True
