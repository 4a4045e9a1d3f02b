import logging

import boto3
from botocore.exceptions import BotoCoreError

from kvcrypt.errors import ConfigurationError, KMSStoreError
from kvcrypt.kv.provider import KVService

logger = logging.getLogger(__name__)

# Server-side encryption algorithms accepted by S3 buckets
SSE_AES256 = "AES256"
SSE_KMS = "aws:kms"


class EncryptingStore(KVService):
    """KVService that encrypts values with AWS KMS before handing them to an inner store.

    `kms_client` is a boto3 KMS client or anything with the same
    encrypt(**kwargs) / decrypt(**kwargs) shape. Both the inner store and the
    client must be safe for concurrent use if the instance is shared between
    threads; the instance itself only holds read-only configuration.

    Values read back are whitespace-trimmed, so leading/trailing whitespace in
    stored values does not survive a round trip.
    """

    def __init__(self, store: KVService, kms_client, key_id: str, encryption_context: dict | None = None):
        self.store = store
        self.kms_client = kms_client
        self.key_id = _validate_key_id(key_id)
        self._encryption_context = _validate_context(encryption_context)

        logger.debug(
            "Initialized KMS encrypted store: key_id=%s, inner=%s, context_keys=%s",
            self.key_id, type(store).__name__, sorted(self._encryption_context),
        )

    @classmethod
    def from_session(cls, session, store: KVService, key_id: str, encryption_context: dict | None = None):
        """Build the store with a KMS client from an existing boto3 Session."""
        _validate_key_id(key_id)
        try:
            kms_client = session.client('kms')
        except BotoCoreError as e:
            raise ConfigurationError(f"failed to create KMS client: {e}") from e
        return cls(store, kms_client, key_id, encryption_context)

    @classmethod
    def from_region(cls, store: KVService, region: str | None, key_id: str, encryption_context: dict | None = None):
        """Build the store with a new boto3 Session for `region`.

        Credentials are resolved the usual boto3 way (environment, profile, instance role).
        """
        _validate_key_id(key_id)
        session = boto3.session.Session(region_name=region)
        return cls.from_session(session, store, key_id, encryption_context)

    @property
    def encryption_context(self) -> dict:
        return dict(self._encryption_context)

    def _decrypt(self, cipher_text: bytes) -> bytes:
        try:
            out = self.kms_client.decrypt(
                CiphertextBlob=cipher_text,
                EncryptionContext=dict(self._encryption_context),
                GrantTokens=[],
            )
        except Exception as e:
            raise KMSStoreError("decrypt", "failed to decrypt with key-management client", e) from e

        plain_text = out['Plaintext'].decode('utf-8', 'surrogateescape')
        return plain_text.strip().encode('utf-8', 'surrogateescape')

    def get(self, key: str) -> bytes:
        try:
            cipher_text = self.store.get(key)
        except Exception as e:
            raise KMSStoreError("get", "failed to get data for key-management client", e) from e

        return self._decrypt(cipher_text)

    def _encrypt(self, plain_text: bytes) -> bytes:
        try:
            out = self.kms_client.encrypt(
                KeyId=self.key_id,
                Plaintext=plain_text,
                EncryptionContext=dict(self._encryption_context),
                GrantTokens=[],
            )
        except Exception as e:
            raise KMSStoreError("encrypt", "failed to encrypt with key-management client", e) from e

        return out['CiphertextBlob']

    def set(self, key: str, value: bytes) -> None:
        cipher_text = self._encrypt(value)
        self.store.set(key, cipher_text)


def _validate_key_id(key_id) -> str:
    if not key_id or not isinstance(key_id, str):
        raise ConfigurationError(f"invalid KMS key id specified: '{key_id if key_id is not None else ''}'")
    return key_id


def _validate_context(encryption_context) -> dict:
    context = dict(encryption_context or {})
    for k, v in context.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ConfigurationError(f"encryption context must map strings to strings, got {k!r}: {v!r}")
    return context
