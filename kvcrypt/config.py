"""Environment-driven configuration and store assembly.

Values come from the process environment, optionally seeded from a `.env`
file in the working directory (python-dotenv).
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from kvcrypt.errors import ConfigurationError
from kvcrypt.kms.aws_kms import EncryptingStore
from kvcrypt.kms.file_kms import FileKMSClient
from kvcrypt.kv.file import FileStore
from kvcrypt.kv.memory import MemoryStore
from kvcrypt.kv.provider import KVService
from kvcrypt.kv.s3 import S3Store

logger = logging.getLogger(__name__)

BACKENDS = ('memory', 'file', 's3')
KMS_PROVIDERS = ('aws', 'file', 'none')


@dataclass(frozen=True)
class Settings:
    backend: str = 'file'
    file_path: str = './kv-store'
    s3_bucket: Optional[str] = None
    s3_prefix: str = ''
    s3_endpoint_url: Optional[str] = None
    s3_sse: Optional[str] = None
    s3_sse_kms_key_id: Optional[str] = None
    kms_provider: str = 'aws'
    kms_key_id: Optional[str] = None
    region: Optional[str] = None
    kms_file_path: str = './kms.key'
    encryption_context: dict = field(default_factory=dict)
    log_level: str = 'INFO'
    siem_endpoint: Optional[str] = None


def parse_encryption_context(raw: Optional[str]) -> dict:
    """Parse `k1=v1,k2=v2` into a dict. Empty input gives an empty context."""
    context = {}
    if not raw or not raw.strip():
        return context
    for item in raw.split(','):
        item = item.strip()
        if not item:
            continue
        k, sep, v = item.partition('=')
        k = k.strip()
        if not sep or not k:
            raise ConfigurationError(f"invalid encryption context entry: {item!r} (expected key=value)")
        if k in context:
            raise ConfigurationError(f"duplicate encryption context key: {k!r}")
        context[k] = v.strip()
    return context


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    if environ is None:
        load_dotenv()
        environ = os.environ

    def get(name, default=None):
        value = environ.get(name)
        return value if value not in (None, '') else default

    backend = get('KV_BACKEND', 'file').lower()
    if backend not in BACKENDS:
        raise ConfigurationError(f"unknown KV_BACKEND {backend!r}, expected one of {', '.join(BACKENDS)}")

    kms_provider = get('KMS_PROVIDER', 'aws').lower()
    if kms_provider not in KMS_PROVIDERS:
        raise ConfigurationError(f"unknown KMS_PROVIDER {kms_provider!r}, expected one of {', '.join(KMS_PROVIDERS)}")

    return Settings(
        backend=backend,
        file_path=get('KV_FILE_PATH', './kv-store'),
        s3_bucket=get('KV_S3_BUCKET'),
        s3_prefix=get('KV_S3_PREFIX', ''),
        s3_endpoint_url=get('KV_S3_ENDPOINT_URL'),
        s3_sse=get('KV_S3_SSE'),
        s3_sse_kms_key_id=get('KV_S3_SSE_KMS_KEY_ID'),
        kms_provider=kms_provider,
        kms_key_id=get('AWS_KMS_KEY_ID'),
        region=get('AWS_REGION'),
        kms_file_path=get('KMS_FILE_PATH', './kms.key'),
        encryption_context=parse_encryption_context(get('KMS_ENCRYPTION_CONTEXT')),
        log_level=get('LOG_LEVEL', 'INFO').upper(),
        siem_endpoint=get('SIEM_ENDPOINT'),
    )


def build_backend(settings: Settings) -> KVService:
    if settings.backend == 'memory':
        return MemoryStore()
    if settings.backend == 'file':
        return FileStore(settings.file_path)
    return S3Store(
        settings.s3_bucket,
        prefix=settings.s3_prefix,
        region=settings.region,
        endpoint_url=settings.s3_endpoint_url,
        sse_algorithm=settings.s3_sse,
        sse_kms_key_id=settings.s3_sse_kms_key_id,
    )


def build_store(settings: Settings) -> KVService:
    """Assemble the configured backend, wrapped in KMS encryption unless KMS_PROVIDER=none."""
    backend = build_backend(settings)

    if settings.kms_provider == 'none':
        logger.warning("KMS_PROVIDER=none: values are stored without client-side encryption")
        return backend
    if settings.kms_provider == 'file':
        if not settings.kms_key_id:
            raise ConfigurationError("invalid KMS key id specified: ''")
        try:
            kms_client = FileKMSClient(settings.kms_file_path)
        except OSError as e:
            raise ConfigurationError(f"cannot open local KMS key {settings.kms_file_path}: {e}") from e
        return EncryptingStore(
            backend,
            kms_client,
            settings.kms_key_id,
            settings.encryption_context,
        )
    return EncryptingStore.from_region(
        backend,
        settings.region,
        settings.kms_key_id,
        settings.encryption_context,
    )
