import json
import logging
import os

from botocore.exceptions import ClientError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

NONCE_SIZE = 12


class FileKMSClient:
    """Simple file-backed KMS client for local development only.

    Stores a single master key in a file (protected via file perms) and
    mimics the encrypt/decrypt calls of a boto3 KMS client, so it can be
    handed to EncryptingStore in place of the real service.

    Blob layout: 2-byte key id length | key id | nonce | AES-GCM ciphertext.
    The key id and encryption context are bound as associated data, so a
    context mismatch fails decryption like it does in KMS.
    """

    def __init__(self, key_path: str):
        self.key_path = key_path
        if not os.path.exists(key_path):
            mk = AESGCM.generate_key(bit_length=256)
            fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, 'wb') as f:
                f.write(mk)
            logger.info("Generated local KMS master key at %s", key_path)

    def _load_master(self) -> bytes:
        with open(self.key_path, 'rb') as f:
            return f.read()

    def encrypt(self, KeyId, Plaintext, EncryptionContext=None, GrantTokens=None, **_):
        if not KeyId:
            raise _client_error('ValidationException', 'KeyId is required', 'Encrypt')
        if not Plaintext:
            raise _client_error('ValidationException', 'Plaintext must not be empty', 'Encrypt')

        key_id = KeyId.encode('utf-8')
        nonce = os.urandom(NONCE_SIZE)
        aesgcm = AESGCM(self._load_master())
        enc = aesgcm.encrypt(nonce, bytes(Plaintext), _associated_data(key_id, EncryptionContext))
        blob = len(key_id).to_bytes(2, 'big') + key_id + nonce + enc
        return {'CiphertextBlob': blob, 'KeyId': KeyId}

    def decrypt(self, CiphertextBlob, EncryptionContext=None, GrantTokens=None, **_):
        data = bytes(CiphertextBlob or b'')
        id_len = int.from_bytes(data[:2], 'big')
        key_id = data[2:2 + id_len]
        nonce = data[2 + id_len:2 + id_len + NONCE_SIZE]
        enc = data[2 + id_len + NONCE_SIZE:]
        if len(data) < 2 or not key_id or len(nonce) != NONCE_SIZE or not enc:
            raise _client_error('InvalidCiphertextException', 'Malformed ciphertext blob', 'Decrypt')

        aesgcm = AESGCM(self._load_master())
        try:
            plain = aesgcm.decrypt(nonce, enc, _associated_data(key_id, EncryptionContext))
        except InvalidTag:
            raise _client_error('InvalidCiphertextException', 'Ciphertext or encryption context does not match', 'Decrypt') from None
        return {'Plaintext': plain, 'KeyId': key_id.decode('utf-8')}


def _associated_data(key_id: bytes, encryption_context) -> bytes:
    context = json.dumps(encryption_context or {}, sort_keys=True, separators=(',', ':'))
    return key_id + b'\x00' + context.encode('utf-8')


def _client_error(code: str, message: str, operation: str) -> ClientError:
    return ClientError({'Error': {'Code': code, 'Message': message}}, operation)
