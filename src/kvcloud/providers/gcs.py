"""
GCS Storage Provider - Google Cloud Storage

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/providers/gcs.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Core Implementation

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Provider on google-cloud-storage with service
                                account or application default credentials
                                and optional CMEK encryption.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

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
# SDK Imports - Official Google Cloud SDK
# =============================================================================

try:
    from google.api_core import exceptions as gcs_exceptions
    from google.auth import exceptions as auth_exceptions
    from google.cloud import storage as gcs
    from google.oauth2 import service_account
    GCS_AVAILABLE = True
except ImportError:
    GCS_AVAILABLE = False
    gcs = None


GCS_OPTIONS = "gcs"


@dataclass
class GCSOptions:
    """GCS-specific settings, exposed through get_options("gcs")"""
    project_id: Optional[str] = None
    service_account_json: Optional[str] = None  # path or inline JSON


class GCSStorageProvider(CloudStorageProvider):
    """
    Provider for Google Cloud Storage.

    The provider's encryption_key_id, when set, is used as the Cloud KMS key
    name for new objects.
    """

    PROVIDER_NAME = "gcs"
    available = GCS_AVAILABLE

    def __init__(self, options: Optional[CloudStorageProviderOptions] = None,
                 gcs_options: Optional[GCSOptions] = None, client: Any = None):
        super().__init__(options)
        self._gcs_options = gcs_options or GCSOptions()
        self._client = client
        self.register_options(GCS_OPTIONS, self._gcs_options)

    def _create_client(self) -> Any:
        """Build the storage client from service account or default credentials"""
        sa_json = self._gcs_options.service_account_json
        project = self._gcs_options.project_id

        if not sa_json:
            return gcs.Client(project=project)

        if os.path.isfile(sa_json):
            credentials = service_account.Credentials.from_service_account_file(sa_json)
        else:
            credentials = service_account.Credentials.from_service_account_info(
                json.loads(sa_json)
            )
        return gcs.Client(credentials=credentials, project=project)

    @property
    def _timeout(self) -> Any:
        connect = self._options.connect_timeout_ms / 1000.0 or None
        read = self._options.request_timeout_ms / 1000.0 or None
        if connect is None and read is None:
            return 60
        return (connect or 60, read or 60)

    def _translate_error(self, error: Exception, action: str, bucket: Optional[str],
                         object_path: Optional[str]) -> Optional[CloudError]:
        message = f"GCS {action} failed: {error}"
        if isinstance(error, gcs_exceptions.NotFound):
            return NotFoundError(message, bucket, object_path)
        if isinstance(error, (gcs_exceptions.Forbidden, gcs_exceptions.Unauthorized,
                              gcs_exceptions.BadRequest, auth_exceptions.DefaultCredentialsError)):
            return InvalidConfigurationError(message, bucket, object_path)
        if isinstance(error, (gcs_exceptions.GoogleAPIError, auth_exceptions.TransportError,
                              OSError)):
            return CloudIOError(message, bucket, object_path)
        return None

    # -------------------------------------------------------------------------
    # Buckets
    # -------------------------------------------------------------------------

    def create_bucket(self, bucket: str) -> None:
        with self._request(CloudRequestOpType.CREATE, "create bucket", bucket):
            try:
                self.client.create_bucket(bucket, location=self._region, timeout=self._timeout)
            except gcs_exceptions.Conflict:
                logger.debug(f"Bucket {bucket} already exists")
        logger.info(f"Created GCS bucket {bucket}")

    def exists_bucket(self, bucket: str) -> bool:
        with self._request(CloudRequestOpType.INFO, "lookup bucket", bucket):
            return self.client.lookup_bucket(bucket, timeout=self._timeout) is not None

    def _list_blobs(self, bucket: str, prefix: str) -> List[Any]:
        with self._request(CloudRequestOpType.LIST, "list blobs", bucket, prefix) as req:
            # the iterator follows page tokens on its own
            blobs = list(self.client.list_blobs(bucket, prefix=prefix, timeout=self._timeout))
            req.size = len(blobs)
        return blobs

    def list_cloud_objects(self, bucket: str, path_prefix: str = "") -> List[str]:
        prefix = listing_prefix(path_prefix)
        return [strip_prefix(blob.name, prefix) for blob in self._list_blobs(bucket, prefix)]

    def empty_bucket(self, bucket: str, path_prefix: str = "") -> int:
        deleted: List[str] = []
        for blob in self._list_blobs(bucket, listing_prefix(path_prefix)):
            try:
                with self._request(CloudRequestOpType.DELETE, "delete blob", bucket, blob.name):
                    blob.delete(timeout=self._timeout)
            except NotFoundError:
                pass
            except CloudError as e:
                raise PartialFailureError(
                    f"Emptying bucket stopped at {blob.name}: {e}",
                    bucket=bucket, object_path=path_prefix, completed=deleted,
                ) from e
            deleted.append(blob.name)

        logger.info(f"Emptied {bucket}/{path_prefix} ({len(deleted)} objects)")
        return len(deleted)

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def _get_blob(self, bucket: str, object_path: str) -> Any:
        with self._request(CloudRequestOpType.INFO, "get blob", bucket, object_path):
            blob = self.client.bucket(bucket).get_blob(object_path, timeout=self._timeout)
        if blob is None:
            raise NotFoundError("Object does not exist", bucket, object_path)
        return blob

    def get_cloud_object_metadata(self, bucket: str, object_path: str) -> CloudObjectInformation:
        blob = self._get_blob(bucket, object_path)
        return CloudObjectInformation(
            size=blob.size or 0,
            modification_time=int(blob.updated.timestamp() * 1000) if blob.updated else 0,
            content_hash=blob.etag or "",
            metadata=blob.metadata or {},
        )

    def delete_cloud_object(self, bucket: str, object_path: str) -> None:
        with self._request(CloudRequestOpType.DELETE, "delete blob", bucket, object_path):
            self.client.bucket(bucket).blob(object_path).delete(timeout=self._timeout)
        logger.debug(f"Deleted {bucket}/{object_path}")

    def copy_cloud_object(self, src_bucket: str, src_object_path: str,
                          dest_bucket: str, dest_object_path: str) -> None:
        with self._request(CloudRequestOpType.COPY, "copy blob", src_bucket, src_object_path):
            source = self.client.bucket(src_bucket)
            source.copy_blob(
                source.blob(src_object_path),
                self.client.bucket(dest_bucket),
                dest_object_path,
                timeout=self._timeout,
            )
        logger.debug(f"Copied {src_bucket}/{src_object_path} to {dest_bucket}/{dest_object_path}")

    def put_cloud_object_metadata(self, bucket: str, object_path: str,
                                  metadata: Mapping[str, str]) -> None:
        blob = self._get_blob(bucket, object_path)
        # patch() merges, so keys missing from the new map are cleared explicitly
        replacement = {key: None for key in (blob.metadata or {}) if key not in metadata}
        replacement.update(metadata)

        with self._request(CloudRequestOpType.WRITE, "patch metadata", bucket, object_path):
            blob.metadata = replacement
            blob.patch(timeout=self._timeout)

    def read_cloud_object_range(self, bucket: str, object_path: str,
                                offset: int, length: int) -> bytes:
        if length <= 0:
            return b""
        with self._request(CloudRequestOpType.READ, "ranged download", bucket, object_path) as req:
            data = self.client.bucket(bucket).blob(object_path).download_as_bytes(
                start=offset, end=offset + length - 1, timeout=self._timeout
            )
            req.size = len(data)
        return data

    def _download_object(self, bucket: str, object_path: str, local_path: str) -> None:
        with self._request(CloudRequestOpType.READ, "download", bucket, object_path) as req:
            self.client.bucket(bucket).blob(object_path).download_to_filename(
                local_path, timeout=self._timeout
            )
            req.size = os.path.getsize(local_path)

    def _upload_object(self, local_path: str, bucket: str, object_path: str) -> None:
        kms_key_name = None
        if self._options.server_side_encryption and self._options.encryption_key_id:
            kms_key_name = self._options.encryption_key_id

        with self._request(CloudRequestOpType.WRITE, "upload", bucket, object_path,
                           size=os.path.getsize(local_path)):
            blob = self.client.bucket(bucket).blob(object_path, kms_key_name=kms_key_name)
            blob.upload_from_filename(local_path, timeout=self._timeout)
