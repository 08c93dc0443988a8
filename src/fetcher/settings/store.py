"""
Persistent fetch settings (JSON file, default data/config.json).

Reads never fail: a missing, unreadable or malformed file yields defaults.
Writes go to a sibling ".tmp" file first and are moved into place, so a
crash mid-write leaves the previous settings intact.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable

from .models import FetchSettings

logger = logging.getLogger(__name__)


class SettingsStore:
    """
    Thread-safe load/save of FetchSettings.

    Usage:
        store = SettingsStore(path=data_dir / "config.json")
        store.update(mutator=lambda s: replace(s, timeout_s=30.0))
    """

    def __init__(self, *, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> FetchSettings:
        with self._lock:
            if not self._path.exists():
                return FetchSettings()

            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("ignoring unreadable settings file %s: %s", self._path, exc)
                return FetchSettings()

            if not isinstance(raw, dict):
                return FetchSettings()

            return FetchSettings.from_persist_dict(raw)

    def save(self, settings: FetchSettings) -> None:
        payload = settings.to_persist_dict()

        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
            tmp_path.replace(self._path)

    def update(self, *, mutator: Callable[[FetchSettings], FetchSettings]) -> FetchSettings:
        """Load, apply `mutator`, persist and return the result under one lock."""
        with self._lock:
            current = self.load()
            updated = mutator(current)
            if not isinstance(updated, FetchSettings):
                raise TypeError("mutator must return FetchSettings")
            self.save(updated)
            return updated

    def set_value(self, *, key: str, value: Any) -> FetchSettings:
        """
        Set a single settings attribute.

        Raises:
            KeyError: If FetchSettings has no such attribute.
        """
        def mutate(settings: FetchSettings) -> FetchSettings:
            if not hasattr(settings, key):
                raise KeyError(key)
            setattr(settings, key, value)
            return settings

        return self.update(mutator=mutate)
