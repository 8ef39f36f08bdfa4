"""
Process-wide key-value settings persisted as a small JSON file.

Holds the "initial sync complete" flag that gates the one-time bulk import
from Firebase.
"""

import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict

logger = logging.getLogger(__name__)

KEY_INITIAL_SYNC_COMPLETE = "initial_sync_complete"


class PreferencesManager:
    """Small JSON-backed preferences store, safe to share between threads."""

    def __init__(self, path: str = "yoga_admin_prefs.json"):
        self.path = path
        self._lock = threading.Lock()
        self._values = self._load()

    def _load(self) -> Dict[str, Any]:
        """Read the preferences file, returning an empty mapping when it is missing or corrupt"""
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as prefs_file:
                data = json.load(prefs_file)
        except (OSError, ValueError) as err:
            logger.warning("Could not read preferences from %s: %s", self.path, err)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".prefs-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
                json.dump(self._values, tmp_file, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value
            self._save()

    def remove(self, key: str) -> None:
        with self._lock:
            if key in self._values:
                del self._values[key]
                self._save()

    def is_initial_sync_complete(self) -> bool:
        """Whether the one-time import from Firebase has finished"""
        return bool(self.get(KEY_INITIAL_SYNC_COMPLETE, False))

    def set_initial_sync_complete(self, is_complete: bool) -> None:
        self.set(KEY_INITIAL_SYNC_COMPLETE, bool(is_complete))
