"""
Durable key-value storage for redirect-tracking state.

Redirect sign-in leaves the page, so attempt records and session flags
must live outside process memory. Every read loads the whole file and every
write replaces it, so a stale instance writing after a fresh one simply
wins; entries are append/prune only and need no transactions.
"""

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import orjson

from core.logger import get_logger

logger = get_logger(__name__)


class StorageKeys:
    """Keys shared by the attempt guard and the reconciler flags."""

    ATTEMPTS = "trek_auth_attempts"
    REDIRECT_IN_PROGRESS = "trek_redirect_in_progress"
    PAGE_LOADED = "trek_page_loaded"
    REDIRECT_CHECKED = "trek_redirect_checked"

    SESSION_FLAGS = (REDIRECT_IN_PROGRESS, PAGE_LOADED, REDIRECT_CHECKED)
    ALL = (ATTEMPTS,) + SESSION_FLAGS


class KeyValueStore(ABC):
    """Minimal persisted key-value interface."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, *keys: str) -> None:
        pass

    def snapshot(self, keys: tuple[str, ...] = StorageKeys.ALL) -> dict[str, Any]:
        return {key: self.get(key) for key in keys}


class MemoryStore(KeyValueStore):
    """In-process store, used in tests and for throwaway sessions."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)


class NamespacedStore(KeyValueStore):
    """
    View of another store with every key prefixed by ``namespace``.

    Lets many browser clients share one backing file without seeing each
    other's attempts or flags.
    """

    def __init__(self, backing: KeyValueStore, namespace: str):
        self.backing = backing
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str, default: Any = None) -> Any:
        return self.backing.get(self._key(key), default)

    def set(self, key: str, value: Any) -> None:
        self.backing.set(self._key(key), value)

    def delete(self, *keys: str) -> None:
        self.backing.delete(*(self._key(key) for key in keys))


class JsonFileStore(KeyValueStore):
    """
    JSON file backed store.

    Unreadable or corrupt files read as empty so that a damaged state file
    degrades into "no attempts recorded" instead of blocking sign-in.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning(f"Could not read auth state file {self.path}: {e}")
            return {}

        if not raw.strip():
            return {}
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt auth state file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(orjson.dumps(data))
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, *keys: str) -> None:
        data = self._load()
        removed = [key for key in keys if data.pop(key, None) is not None]
        if removed:
            self._save(data)
