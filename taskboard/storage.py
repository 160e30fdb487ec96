"""
Key/value storage backends.

The store only ever talks to a StoragePort: string keys mapping to string
values, with get/set/remove/keys. MemoryStorage is the in-process fake;
FileStorage keeps one JSON file per key in a directory so several
processes can share the same state.
"""
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import StorageQuotaExceeded

FILE_SUFFIX = ".json"


class StoragePort(ABC):
    """Minimal key/value interface (the localStorage surface)."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All keys currently stored."""


class MemoryStorage(StoragePort):
    """Dict-backed storage. `quota_bytes` caps the total size of all values."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(value) > self.quota_bytes:
                raise StorageQuotaExceeded(
                    f"Writing {key} would exceed the {self.quota_bytes}-byte quota"
                )
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class FileStorage(StoragePort):
    """One `<key>.json` file per key under `root`. Writes are atomic replaces."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser()
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / f"{key}{FILE_SUFFIX}"

    def key_for_path(self, path: Union[str, Path]) -> Optional[str]:
        """Map a file path back to its key; None for files this storage does not own."""
        p = Path(path)
        if p.suffix != FILE_SUFFIX or p.name.startswith("."):
            return None
        try:
            if p.parent.resolve() != self.root.resolve():
                return None
        except OSError:
            return None
        return p.stem

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        fd, tmp = tempfile.mkstemp(dir=str(self.root), prefix=".tmp-", suffix=FILE_SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    def keys(self) -> List[str]:
        return sorted(
            p.stem for p in self.root.glob(f"*{FILE_SUFFIX}") if not p.name.startswith(".")
        )
