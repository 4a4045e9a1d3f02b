import threading

from kvcrypt.errors import NotFoundError
from kvcrypt.kv.provider import KVService, validate_key


class MemoryStore(KVService):
    """In-process store, mostly useful for tests and as a scratch backend."""

    def __init__(self, initial: dict | None = None):
        self._data = {k: bytes(v) for k, v in (initial or {}).items()}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes:
        validate_key(key)
        with self._lock:
            try:
                return self._data[key]
            except KeyError:
                raise NotFoundError(key) from None

    def set(self, key: str, value: bytes) -> None:
        validate_key(key)
        with self._lock:
            self._data[key] = bytes(value)

    def keys(self):
        with self._lock:
            return sorted(self._data)
