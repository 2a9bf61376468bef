"""
Local persisted key/value flags (last user id, modal dismissal, auth token)
"""
from abc import ABC, abstractmethod
import json
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = "authToken"
LAST_USER_ID_KEY = "lastUserId"


def modal_dismissed_key(user_id) -> str:
    return f"trial_modal_dismissed_{user_id}"


class LocalStorage(ABC):
    """String key/value storage that outlives a single page or process"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Stored value, or None when the key is absent"""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete the key; missing keys are ignored"""
        pass


class InMemoryStorage(LocalStorage):
    """Storage kept for the lifetime of the process"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage(LocalStorage):
    """Storage persisted as a JSON object on disk"""

    def __init__(self, path: Path):
        self._path = Path(path)
        self._cache: Optional[Dict[str, str]] = None

    def _load(self) -> Dict[str, str]:
        if self._cache is None:
            try:
                payload = json.loads(self._path.read_text(encoding="utf-8"))
                if not isinstance(payload, dict):
                    raise ValueError("root is not an object")
                self._cache = {str(k): str(v) for k, v in payload.items()}
            except FileNotFoundError:
                self._cache = {}
            except (OSError, json.JSONDecodeError, ValueError) as e:
                logger.warning(f"Failed to load local storage from {self._path}: {e}")
                self._cache = {}
        return self._cache

    def _store(self, items: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        self._cache = items

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        items = dict(self._load())
        items[key] = str(value)
        self._store(items)

    def remove(self, key: str) -> None:
        items = dict(self._load())
        if key in items:
            del items[key]
            self._store(items)
