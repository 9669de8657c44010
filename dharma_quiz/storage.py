"""
Key/value stores scoped to a single participant.

These stores are allowed to raise on I/O problems; callers that need
best-effort behaviour (see ProgressStore) catch and log.
"""
import json
import logging
from pathlib import Path
from typing import Dict, Optional


class ScopedStorage:
    """Interface for string key/value storage owned by one participant."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(ScopedStorage):
    """In-process storage, lost when the process exits."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


class JsonFileStorage(ScopedStorage):
    """
    Storage backed by one JSON object file.

    Every call reads the file so two stores pointing at the same path
    behave as last-write-wins.
    """

    def __init__(self, file_path):
        """
        Args:
            file_path: Path of the JSON file holding this scope's items
        """
        self.file_path = Path(file_path)
        self.logger = logging.getLogger(__name__)

    def _read_all(self) -> Dict[str, str]:
        if not self.file_path.exists():
            return {}
        with open(self.file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self.file_path} does not contain a JSON object")
        return data

    def _write_all(self, items: Dict[str, str]) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(items, f, ensure_ascii=False)
        tmp_path.replace(self.file_path)

    def get(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"Stored value for {key} is not a string")
        return value

    def set(self, key: str, value: str) -> None:
        items = self._read_all()
        items[key] = value
        self._write_all(items)

    def remove(self, key: str) -> None:
        items = self._read_all()
        if key in items:
            del items[key]
            self._write_all(items)
            self.logger.debug(f"Removed {key} from {self.file_path}")
