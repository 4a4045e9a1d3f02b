"""S3 key-value store using boto3.

Each key is stored as one object under an optional prefix. Objects can be
protected at rest with S3 server-side encryption (SSE-S3 or SSE-KMS); this is
independent of, and can be combined with, the client-side KMS encryption done
by EncryptingStore.
"""

import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from kvcrypt.errors import ConfigurationError, NotFoundError, StoreError
from kvcrypt.kms.aws_kms import SSE_AES256, SSE_KMS
from kvcrypt.kv.provider import KVService, validate_key

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound")


class S3Store(KVService):
    """KVService backed by an S3 (or S3-compatible) bucket.

    Example:
        store = S3Store("my-bucket", prefix="vault/", region="eu-west-1",
                        sse_algorithm=SSE_KMS, sse_kms_key_id="alias/s3")
        store.set("root-token", b"...")
    """

    def __init__(
        self,
        bucket_name: str,
        prefix: str = "",
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        sse_algorithm: Optional[str] = None,
        sse_kms_key_id: Optional[str] = None,
        client=None,
    ):
        """Initialize the store.

        Args:
            bucket_name: Target bucket (must already exist)
            prefix: String prepended to every key
            region: AWS region, used only when `client` is not given
            endpoint_url: Custom endpoint (MinIO etc.), used only when `client` is not given
            sse_algorithm: None, SSE_AES256 or SSE_KMS
            sse_kms_key_id: KMS key for SSE_KMS; defaults to the bucket's AWS managed key
            client: Pre-built boto3 S3 client

        Raises:
            ConfigurationError: If the bucket or SSE settings are invalid
        """
        if not bucket_name:
            raise ConfigurationError("S3 bucket name is required")
        if sse_algorithm not in (None, "", SSE_AES256, SSE_KMS):
            raise ConfigurationError(f"unsupported S3 server-side encryption algorithm: '{sse_algorithm}'")
        if sse_kms_key_id and sse_algorithm != SSE_KMS:
            raise ConfigurationError(f"sse_kms_key_id requires sse_algorithm '{SSE_KMS}'")

        self.bucket_name = bucket_name
        self.prefix = prefix or ""
        self.sse_algorithm = sse_algorithm or None
        self.sse_kms_key_id = sse_kms_key_id or None
        self.s3_client = client or boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

        logger.debug(
            "Initialized S3 store: bucket=%s, prefix=%r, endpoint=%s, sse=%s",
            bucket_name, self.prefix, endpoint_url or "AWS S3", self.sse_algorithm,
        )

    def _object_key(self, key: str) -> str:
        return self.prefix + validate_key(key)

    def get(self, key: str) -> bytes:
        object_key = self._object_key(key)
        try:
            resp = self.s3_client.get_object(Bucket=self.bucket_name, Key=object_key)
            return resp["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                raise NotFoundError(key) from None
            raise StoreError(f"failed to get object s3://{self.bucket_name}/{object_key}: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"failed to get object s3://{self.bucket_name}/{object_key}: {e}") from e

    def set(self, key: str, value: bytes) -> None:
        object_key = self._object_key(key)
        params = {"Bucket": self.bucket_name, "Key": object_key, "Body": value}
        if self.sse_algorithm:
            params["ServerSideEncryption"] = self.sse_algorithm
            if self.sse_kms_key_id:
                params["SSEKMSKeyId"] = self.sse_kms_key_id

        try:
            self.s3_client.put_object(**params)
        except (BotoCoreError, ClientError) as e:
            raise StoreError(f"failed to put object s3://{self.bucket_name}/{object_key}: {e}") from e

        logger.debug("Uploaded s3://%s/%s (%d bytes)", self.bucket_name, object_key, len(value))
