import logging
import os
import tempfile

from kvcrypt.errors import NotFoundError, StoreError
from kvcrypt.kv.provider import KVService, validate_key

logger = logging.getLogger(__name__)

# Temp files are named '.<random>.tmp'; keys may not use that pattern
TEMP_PREFIX = '.'
TEMP_SUFFIX = '.tmp'


class FileStore(KVService):
    """Stores each key as a file below `root_path`.

    Keys containing '/' map to sub-directories. Each write goes through its own
    temporary file and os.replace, so a reader never sees a half-written value
    and concurrent writers to one key never share a temp file.
    """

    def __init__(self, root_path: str):
        if not root_path:
            raise ValueError("root_path is required")
        self.root_path = os.path.abspath(root_path)

    def _key_path(self, key: str) -> str:
        validate_key(key)
        if '\x00' in key:
            raise ValueError(f"keys may not contain null bytes: {key!r}")
        if os.path.isabs(key):
            raise ValueError(f"absolute keys are not allowed: {key!r}")

        parts = [p for p in key.split('/') if p not in ('', '.')]
        if not parts or '..' in parts:
            raise ValueError(f"key escapes the store root: {key!r}")
        if any(p.startswith(TEMP_PREFIX) and p.endswith(TEMP_SUFFIX) for p in parts):
            raise ValueError(f"key uses the reserved temp file pattern '.*.tmp': {key!r}")
        return os.path.join(self.root_path, *parts)

    def get(self, key: str) -> bytes:
        path = self._key_path(key)
        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError:
            raise NotFoundError(key) from None
        except OSError as e:
            raise StoreError(f"failed to read '{key}' from {self.root_path}: {e}") from e

    def set(self, key: str, value: bytes) -> None:
        path = self._key_path(key)
        temp_path = None
        try:
            os.makedirs(os.path.dirname(path), mode=0o700, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=os.path.dirname(path), prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX)
            with os.fdopen(fd, 'wb') as f:
                os.fchmod(f.fileno(), 0o600)
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
        except OSError as e:
            if temp_path and os.path.exists(temp_path):
                os.remove(temp_path)
            raise StoreError(f"failed to write '{key}' to {self.root_path}: {e}") from e

        logger.debug("Stored key=%s in %s (%d bytes)", key, self.root_path, len(value))
