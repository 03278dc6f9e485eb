"""
S3 Storage Provider - AWS S3 and S3-compatible object stores

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/providers/s3.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Core Implementation

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Built-in provider on boto3 supporting:
                                - AWS S3 (native)
                                - MinIO / Wasabi / Ceph (endpoint_url)
                                Server-side encryption via AES256 or KMS.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from ..errors import (
    CloudError,
    CloudIOError,
    InvalidConfigurationError,
    NotFoundError,
    PartialFailureError,
)
from ..filename import listing_prefix, strip_prefix
from ..options import CloudStorageProviderOptions
from .base import CloudObjectInformation, CloudRequestOpType, CloudStorageProvider

logger = logging.getLogger(__name__)


# =============================================================================
# SDK Imports - Official AWS SDK
# =============================================================================

try:
    import boto3
    from boto3.s3.transfer import TransferConfig
    from botocore.config import Config as BotoConfig
    from botocore.exceptions import BotoCoreError, ClientError
    BOTO3_AVAILABLE = True
except ImportError:
    BOTO3_AVAILABLE = False
    boto3 = None


NOT_FOUND_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NotFound"}
AUTH_CODES = {
    "403",
    "AccessDenied",
    "AllAccessDisabled",
    "ExpiredToken",
    "InvalidAccessKeyId",
    "InvalidToken",
    "SignatureDoesNotMatch",
}
CONFIG_CODES = {"InvalidBucketName", "InvalidLocationConstraint", "IllegalLocationConstraintException"}

# Objects larger than this go through the managed multipart transfer
MULTIPART_THRESHOLD = 64 * 1024 * 1024
MULTIPART_CHUNKSIZE = 16 * 1024 * 1024
DELETE_BATCH_SIZE = 1000
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def _error_code(error: Exception) -> str:
    return str(getattr(error, "response", {}).get("Error", {}).get("Code", ""))


class S3StorageProvider(CloudStorageProvider):
    """
    Provider for AWS S3 and S3-compatible storage.

    Supports:
    - AWS S3 (native)
    - MinIO, Wasabi, Ceph RadosGW through endpoint_url
    """

    PROVIDER_NAME = "s3"
    available = BOTO3_AVAILABLE

    def __init__(self, options: Optional[CloudStorageProviderOptions] = None,
                 client: Any = None):
        """
        Initialize S3 provider.

        Args:
            options: Provider configuration
            client: Pre-built boto3 S3 client (custom sessions, tests)
        """
        super().__init__(options)
        self._client = client

    def _create_client(self) -> Any:
        """Build the boto3 client from the provider options"""
        config_kwargs: Dict[str, Any] = {
            "signature_version": "s3v4",
            "retries": {"max_attempts": self._options.max_retries,
                        "mode": self._options.retry_mode},
        }
        # 0 keeps the botocore default
        if self._options.connect_timeout_ms:
            config_kwargs["connect_timeout"] = self._options.connect_timeout_ms / 1000.0
        if self._options.request_timeout_ms:
            config_kwargs["read_timeout"] = self._options.request_timeout_ms / 1000.0

        client_kwargs: Dict[str, Any] = {"config": BotoConfig(**config_kwargs)}
        if self._region:
            client_kwargs["region_name"] = self._region
        if self._options.endpoint_url:
            client_kwargs["endpoint_url"] = self._options.endpoint_url

        credentials = self._options.credentials
        if credentials.has_valid():
            client_kwargs["aws_access_key_id"] = credentials.access_key_id
            client_kwargs["aws_secret_access_key"] = credentials.secret_key
            if credentials.session_token:
                client_kwargs["aws_session_token"] = credentials.session_token

        return boto3.client("s3", **client_kwargs)

    def _translate_error(self, error: Exception, action: str, bucket: Optional[str],
                         object_path: Optional[str]) -> Optional[CloudError]:
        if isinstance(error, ClientError):
            code = _error_code(error)
            message = f"S3 {action} failed: {code}"
            if code in NOT_FOUND_CODES:
                return NotFoundError(message, bucket, object_path)
            if code in AUTH_CODES or code in CONFIG_CODES:
                return InvalidConfigurationError(message, bucket, object_path)
            return CloudIOError(message, bucket, object_path)
        if isinstance(error, BotoCoreError):
            return CloudIOError(f"S3 {action} failed: {error}", bucket, object_path)
        if isinstance(error, OSError):
            return CloudIOError(f"S3 {action} failed: {error}", bucket, object_path)
        return None

    def _build_extra_args(self, metadata: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """Build extra arguments for S3 write operations"""
        extra_args: Dict[str, Any] = {}

        if metadata is not None:
            extra_args["Metadata"] = dict(metadata)

        if self._options.server_side_encryption:
            if self._options.encryption_key_id:
                extra_args["ServerSideEncryption"] = "aws:kms"
                extra_args["SSEKMSKeyId"] = self._options.encryption_key_id
            else:
                extra_args["ServerSideEncryption"] = "AES256"

        return extra_args

    # -------------------------------------------------------------------------
    # Buckets
    # -------------------------------------------------------------------------

    def create_bucket(self, bucket: str) -> None:
        kwargs: Dict[str, Any] = {"Bucket": bucket}
        if self._region and self._region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._region}

        with self._request(CloudRequestOpType.CREATE, "create bucket", bucket):
            try:
                self.client.create_bucket(**kwargs)
            except ClientError as e:
                if _error_code(e) != "BucketAlreadyOwnedByYou":
                    raise
                logger.debug(f"Bucket {bucket} already exists")

        logger.info(f"Created S3 bucket {bucket}")

    def exists_bucket(self, bucket: str) -> bool:
        try:
            with self._request(CloudRequestOpType.INFO, "head bucket", bucket):
                self.client.head_bucket(Bucket=bucket)
        except NotFoundError:
            return False
        return True

    def _list_keys(self, bucket: str, prefix: str) -> List[str]:
        keys: List[str] = []
        with self._request(CloudRequestOpType.LIST, "list objects", bucket, prefix) as req:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
            req.size = len(keys)
        return keys

    def list_cloud_objects(self, bucket: str, path_prefix: str = "") -> List[str]:
        prefix = listing_prefix(path_prefix)
        return [strip_prefix(key, prefix) for key in self._list_keys(bucket, prefix)]

    def empty_bucket(self, bucket: str, path_prefix: str = "") -> int:
        keys = self._list_keys(bucket, listing_prefix(path_prefix))
        deleted: List[str] = []

        for i in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[i:i + DELETE_BATCH_SIZE]
            with self._request(CloudRequestOpType.DELETE, "delete objects", bucket) as req:
                response = self.client.delete_objects(
                    Bucket=bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
                req.size = len(batch)

            failed = {err["Key"] for err in response.get("Errors", [])}
            deleted.extend(key for key in batch if key not in failed)
            if failed:
                raise PartialFailureError(
                    f"Could not delete {len(failed)} objects while emptying bucket",
                    bucket=bucket, object_path=path_prefix, completed=deleted,
                )

        logger.info(f"Emptied {bucket}/{path_prefix} ({len(deleted)} objects)")
        return len(deleted)

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def get_cloud_object_metadata(self, bucket: str, object_path: str) -> CloudObjectInformation:
        with self._request(CloudRequestOpType.INFO, "head object", bucket, object_path):
            response = self.client.head_object(Bucket=bucket, Key=object_path)

        return CloudObjectInformation(
            size=response["ContentLength"],
            modification_time=int(response["LastModified"].timestamp() * 1000),
            content_hash=response.get("ETag", "").strip('"'),
            metadata=response.get("Metadata", {}),
        )

    def delete_cloud_object(self, bucket: str, object_path: str) -> None:
        # S3 deletes of missing keys succeed silently
        if not self.exists_cloud_object(bucket, object_path):
            raise NotFoundError("Object does not exist", bucket, object_path)

        with self._request(CloudRequestOpType.DELETE, "delete object", bucket, object_path):
            self.client.delete_object(Bucket=bucket, Key=object_path)
        logger.debug(f"Deleted {bucket}/{object_path}")

    def copy_cloud_object(self, src_bucket: str, src_object_path: str,
                          dest_bucket: str, dest_object_path: str) -> None:
        # CopyObject is atomic: the destination appears only when complete
        with self._request(CloudRequestOpType.COPY, "copy object", src_bucket, src_object_path):
            self.client.copy_object(
                CopySource={"Bucket": src_bucket, "Key": src_object_path},
                Bucket=dest_bucket,
                Key=dest_object_path,
                **self._build_extra_args(),
            )
        logger.debug(f"Copied {src_bucket}/{src_object_path} to {dest_bucket}/{dest_object_path}")

    def put_cloud_object_metadata(self, bucket: str, object_path: str,
                                  metadata: Mapping[str, str]) -> None:
        with self._request(CloudRequestOpType.WRITE, "replace metadata", bucket, object_path):
            self.client.copy_object(
                CopySource={"Bucket": bucket, "Key": object_path},
                Bucket=bucket,
                Key=object_path,
                MetadataDirective="REPLACE",
                **self._build_extra_args(metadata),
            )

    def read_cloud_object_range(self, bucket: str, object_path: str,
                                offset: int, length: int) -> bytes:
        if length <= 0:
            return b""
        with self._request(CloudRequestOpType.READ, "ranged get", bucket, object_path) as req:
            response = self.client.get_object(
                Bucket=bucket, Key=object_path,
                Range=f"bytes={offset}-{offset + length - 1}",
            )
            data = response["Body"].read()
            req.size = len(data)
        return data

    def _download_object(self, bucket: str, object_path: str, local_path: str) -> None:
        with self._request(CloudRequestOpType.READ, "get object", bucket, object_path) as req:
            response = self.client.get_object(Bucket=bucket, Key=object_path)
            with open(local_path, "wb") as f:
                for chunk in response["Body"].iter_chunks(DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)
                    req.size += len(chunk)

    def _upload_object(self, local_path: str, bucket: str, object_path: str) -> None:
        file_size = os.path.getsize(local_path)
        extra_args = self._build_extra_args()

        with self._request(CloudRequestOpType.WRITE, "put object", bucket, object_path,
                           size=file_size):
            if file_size > MULTIPART_THRESHOLD:
                # multipart objects become visible only on completion
                transfer_config = TransferConfig(
                    multipart_threshold=MULTIPART_THRESHOLD,
                    multipart_chunksize=MULTIPART_CHUNKSIZE,
                )
                self.client.upload_file(local_path, bucket, object_path,
                                        ExtraArgs=extra_args, Config=transfer_config)
            else:
                with open(local_path, "rb") as f:
                    self.client.put_object(Bucket=bucket, Key=object_path, Body=f, **extra_args)
