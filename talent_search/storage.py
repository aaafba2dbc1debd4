import re
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileStorage:
    """One file per key under ``directory``; writes go through a temp file."""

    def __init__(self, directory: Path) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._dir

    def _path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key or ""):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._dir / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        with self._lock:
            if not path.exists():
                return None
            try:
                return path.read_text(encoding="utf-8")
            except UnicodeDecodeError as exc:
                # Undecodable state is treated as absent.
                print(f"[storage] discarding unreadable {path.name}: {exc}")
                path.unlink(missing_ok=True)
                return None

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        with self._lock:
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)

    def remove(self, key: str) -> None:
        path = self._path_for(key)
        with self._lock:
            path.unlink(missing_ok=True)


def open_storage(directory: str | Path) -> KeyValueStorage:
    try:
        return FileStorage(Path(directory))
    except OSError as exc:
        # Without durable storage every process start gets a fresh session.
        print(f"[storage] {directory} unavailable, using in-memory storage: {exc}")
        return InMemoryStorage()
