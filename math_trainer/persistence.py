from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from .results import HISTORY_LIMIT, SessionRecord

logger = logging.getLogger(__name__)

STORAGE_PATH_ENV = "MATH_TRAINER_STORAGE_PATH"
HISTORY_KEY = "math-trainer-history"


class KeyValueStorage(Protocol):
    """String key/value store (local storage semantics)."""

    def get_item(self, key: str) -> str | None: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...


class HistoryStore(Protocol):
    def load_history(self) -> list[SessionRecord]: ...
    def save_history(self, records: list[SessionRecord]) -> None: ...
    def clear_history(self) -> None: ...


def default_storage_path() -> Path:
    explicit = os.environ.get(STORAGE_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".math_trainer_storage.json"


class MemoryStorage:
    def __init__(self, items: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """All keys kept in one JSON object on disk.

    Unreadable or unwritable files are logged and treated as empty storage;
    nothing raises out of this class for IO or decoding problems.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def get_item(self, key: str) -> str | None:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = str(value)
        self._write(items)

    def remove_item(self, key: str) -> None:
        items = self._read()
        if key in items:
            del items[key]
            self._write(items)

    def _read(self) -> dict[str, object]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("Ignoring storage file %s: top level is not an object", self._path)
            return {}
        return payload

    def _write(self, items: dict[str, object]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
            tmp_path.write_text(json.dumps(items, indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            logger.warning("Could not write storage file %s: %s", self._path, exc)


class LocalHistoryStore:
    """Session history persisted as a JSON list under a fixed key, newest first."""

    def __init__(self, storage: KeyValueStorage, *, key: str = HISTORY_KEY, limit: int = HISTORY_LIMIT) -> None:
        self._storage = storage
        self._key = key
        self._limit = int(limit)

    def load_history(self) -> list[SessionRecord]:
        try:
            raw = self._storage.get_item(self._key)
        except Exception as exc:
            logger.warning("History unavailable: %s", exc)
            return []
        if not raw:
            return []
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("Stored history under %r is not valid JSON; starting empty", self._key)
            return []
        if not isinstance(payload, list):
            logger.warning("Stored history under %r is not a list; starting empty", self._key)
            return []

        records: list[SessionRecord] = []
        for item in payload:
            record = SessionRecord.from_dict(item)
            if record is None:
                logger.debug("Skipping malformed history entry: %r", item)
                continue
            records.append(record)
        return records[: self._limit]

    def save_history(self, records: list[SessionRecord]) -> None:
        payload = [record.to_dict() for record in list(records)[: self._limit]]
        try:
            self._storage.set_item(self._key, json.dumps(payload))
        except Exception as exc:
            logger.warning("History not saved: %s", exc)

    def clear_history(self) -> None:
        try:
            self._storage.remove_item(self._key)
        except Exception as exc:
            logger.warning("History not cleared: %s", exc)


def open_history_store(path: Path | None = None) -> LocalHistoryStore:
    return LocalHistoryStore(JsonFileStorage(path if path is not None else default_storage_path()))
