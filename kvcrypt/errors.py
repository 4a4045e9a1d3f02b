class ConfigurationError(ValueError):
    """Invalid construction parameters (key id, encryption context, backend names)."""


class StoreError(RuntimeError):
    """A key-value backend failed to read or write."""


class NotFoundError(LookupError):
    """The requested key does not exist in the store."""

    def __init__(self, key: str):
        super().__init__(f"key not found: '{key}'")
        self.key = key


class KMSStoreError(StoreError):
    """Failure inside a KMS-encrypted store.

    `stage` tells which step failed: "get" (inner store read), "decrypt" or
    "encrypt" (KMS call). The underlying exception is kept as `__cause__`.
    """

    def __init__(self, stage: str, message: str, cause: BaseException):
        super().__init__(f"{message}: {cause}")
        self.stage = stage
