from abc import ABC, abstractmethod


class KVService(ABC):
    """Abstract key-value store holding opaque byte values under string keys.

    Implementations must be safe for concurrent use if they are shared
    between threads.
    """

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the value stored under `key`.
        Raises NotFoundError if the key is absent.
        """

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Store `value` under `key`, replacing any previous value."""


def validate_key(key: str) -> str:
    if not isinstance(key, str) or not key:
        raise ValueError(f"invalid key: {key!r}")
    return key
