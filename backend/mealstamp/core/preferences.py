"""
MealStamp - Preferences Store

Holds the user's Gemini API key. Seeded from settings and optionally
persisted as a small JSON document so a key entered through the API
survives restarts.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

API_KEY_FIELD = "gemini_api_key"


class PreferencesStore:
    """
    Example:
        prefs = PreferencesStore(initial_key=settings.gemini_api_key)
        prefs.set_api_key("AIza...")
        key = prefs.get_api_key()
    """

    def __init__(self, initial_key: Optional[str] = None, path: Optional[str] = None):
        self._lock = threading.Lock()
        self._path = Path(path) if path else None
        self._api_key = initial_key or None

        if self._path is not None and self._path.exists():
            self._load()

    def get_api_key(self) -> Optional[str]:
        """The stored key, or None when none is set."""
        with self._lock:
            return self._api_key

    def set_api_key(self, api_key: str) -> None:
        with self._lock:
            self._api_key = api_key.strip() or None
            if self._path is not None:
                self._save()
        logger.info("API key updated" if self._api_key else "API key cleared")

    def _load(self) -> None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read preferences from {self._path}: {e}")
            return
        stored = data.get(API_KEY_FIELD)
        if stored:
            self._api_key = stored
            logger.info(f"Loaded preferences from {self._path}")

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps({API_KEY_FIELD: self._api_key or ""}), encoding="utf-8")
