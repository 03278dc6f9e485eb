"""
Azure Blob Storage Provider - Containers play the role of buckets

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/providers/azure_blob.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Core Implementation

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Provider on azure-storage-blob supporting
                                connection strings, account keys, SAS tokens,
                                managed identity and DefaultAzureCredential.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import logging
import os
import time
from dataclasses import dataclass, field
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
# SDK Imports - Official Azure SDK
# =============================================================================

try:
    from azure.core.exceptions import (
        AzureError,
        ClientAuthenticationError,
        HttpResponseError,
        ResourceExistsError,
        ResourceNotFoundError,
    )
    from azure.identity import DefaultAzureCredential, ManagedIdentityCredential
    from azure.storage.blob import BlobServiceClient
    AZURE_AVAILABLE = True
except ImportError:
    AZURE_AVAILABLE = False
    BlobServiceClient = None


AZURE_OPTIONS = "azure"

COPY_POLL_INTERVAL = 0.5


@dataclass
class AzureOptions:
    """Azure-specific settings, exposed through get_options("azure")"""
    storage_account: Optional[str] = None
    connection_string: Optional[str] = field(default=None, repr=False)
    access_key: Optional[str] = field(default=None, repr=False)
    sas_token: Optional[str] = field(default=None, repr=False)
    use_managed_identity: bool = False
    encryption_scope: Optional[str] = None

    @property
    def account_url(self) -> str:
        return f"https://{self.storage_account}.blob.core.windows.net"


class AzureBlobStorageProvider(CloudStorageProvider):
    """
    Provider for Azure Blob Storage.

    Bucket names map to container names; the region is informational only
    since the storage account fixes the location.
    """

    PROVIDER_NAME = "azure"
    available = AZURE_AVAILABLE

    def __init__(self, options: Optional[CloudStorageProviderOptions] = None,
                 azure_options: Optional[AzureOptions] = None, client: Any = None):
        super().__init__(options)
        self._azure_options = azure_options or AzureOptions()
        self._client = client
        self.register_options(AZURE_OPTIONS, self._azure_options)

    def _create_client(self) -> Any:
        """Build the BlobServiceClient from the first configured credential"""
        azure = self._azure_options
        kwargs = {"retry_total": self._options.max_retries}
        if self._options.connect_timeout_ms:
            kwargs["connection_timeout"] = self._options.connect_timeout_ms / 1000.0
        if self._options.request_timeout_ms:
            kwargs["read_timeout"] = self._options.request_timeout_ms / 1000.0

        if azure.connection_string:
            return BlobServiceClient.from_connection_string(azure.connection_string, **kwargs)

        if not azure.storage_account:
            raise InvalidConfigurationError(
                "Azure needs either a connection string or a storage account"
            )

        if azure.use_managed_identity:
            credential = ManagedIdentityCredential()
        elif azure.sas_token:
            credential = azure.sas_token
        elif azure.access_key:
            credential = azure.access_key
        else:
            credential = DefaultAzureCredential()
        return BlobServiceClient(azure.account_url, credential=credential, **kwargs)

    def _translate_error(self, error: Exception, action: str, bucket: Optional[str],
                         object_path: Optional[str]) -> Optional[CloudError]:
        message = f"Azure {action} failed: {error}"
        if isinstance(error, ResourceNotFoundError):
            return NotFoundError(message, bucket, object_path)
        if isinstance(error, ClientAuthenticationError):
            return InvalidConfigurationError(message, bucket, object_path)
        if isinstance(error, HttpResponseError) and error.status_code in (400, 403):
            return InvalidConfigurationError(message, bucket, object_path)
        if isinstance(error, (AzureError, OSError)):
            return CloudIOError(message, bucket, object_path)
        return None

    def _blob(self, bucket: str, object_path: str) -> Any:
        return self.client.get_blob_client(container=bucket, blob=object_path)

    # -------------------------------------------------------------------------
    # Buckets
    # -------------------------------------------------------------------------

    def create_bucket(self, bucket: str) -> None:
        with self._request(CloudRequestOpType.CREATE, "create container", bucket):
            try:
                self.client.create_container(bucket)
            except ResourceExistsError:
                logger.debug(f"Container {bucket} already exists")
        logger.info(f"Created Azure container {bucket}")

    def exists_bucket(self, bucket: str) -> bool:
        with self._request(CloudRequestOpType.INFO, "container exists", bucket):
            return bool(self.client.get_container_client(bucket).exists())

    def _list_names(self, bucket: str, prefix: str) -> List[str]:
        with self._request(CloudRequestOpType.LIST, "list blobs", bucket, prefix) as req:
            container = self.client.get_container_client(bucket)
            names = [blob.name for blob in container.list_blobs(name_starts_with=prefix or None)]
            req.size = len(names)
        return names

    def list_cloud_objects(self, bucket: str, path_prefix: str = "") -> List[str]:
        prefix = listing_prefix(path_prefix)
        return [strip_prefix(name, prefix) for name in self._list_names(bucket, prefix)]

    def empty_bucket(self, bucket: str, path_prefix: str = "") -> int:
        deleted: List[str] = []
        for name in self._list_names(bucket, listing_prefix(path_prefix)):
            try:
                self.delete_cloud_object(bucket, name)
            except NotFoundError:
                pass
            except CloudError as e:
                raise PartialFailureError(
                    f"Emptying container stopped at {name}: {e}",
                    bucket=bucket, object_path=path_prefix, completed=deleted,
                ) from e
            deleted.append(name)

        logger.info(f"Emptied {bucket}/{path_prefix} ({len(deleted)} objects)")
        return len(deleted)

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def get_cloud_object_metadata(self, bucket: str, object_path: str) -> CloudObjectInformation:
        with self._request(CloudRequestOpType.INFO, "get blob properties", bucket, object_path):
            props = self._blob(bucket, object_path).get_blob_properties()

        modified = props.last_modified
        return CloudObjectInformation(
            size=props.size,
            modification_time=int(modified.timestamp() * 1000) if modified else 0,
            content_hash=(props.etag or "").strip('"'),
            metadata=props.metadata or {},
        )

    def delete_cloud_object(self, bucket: str, object_path: str) -> None:
        with self._request(CloudRequestOpType.DELETE, "delete blob", bucket, object_path):
            self._blob(bucket, object_path).delete_blob()
        logger.debug(f"Deleted {bucket}/{object_path}")

    def copy_cloud_object(self, src_bucket: str, src_object_path: str,
                          dest_bucket: str, dest_object_path: str) -> None:
        source_url = self._blob(src_bucket, src_object_path).url
        dest = self._blob(dest_bucket, dest_object_path)

        with self._request(CloudRequestOpType.COPY, "copy blob", src_bucket, src_object_path):
            copy = dest.start_copy_from_url(source_url)
            status = copy.get("copy_status")
            while status == "pending":
                time.sleep(COPY_POLL_INTERVAL)
                status = dest.get_blob_properties().copy.status

            if status != "success":
                # a failed server-side copy can leave a stub destination behind
                try:
                    dest.delete_blob()
                except ResourceNotFoundError:
                    pass
                raise CloudIOError(f"Copy ended with status {status}",
                                   bucket=dest_bucket, object_path=dest_object_path)

        logger.debug(f"Copied {src_bucket}/{src_object_path} to {dest_bucket}/{dest_object_path}")

    def put_cloud_object_metadata(self, bucket: str, object_path: str,
                                  metadata: Mapping[str, str]) -> None:
        with self._request(CloudRequestOpType.WRITE, "set metadata", bucket, object_path):
            self._blob(bucket, object_path).set_blob_metadata(dict(metadata))

    def read_cloud_object_range(self, bucket: str, object_path: str,
                                offset: int, length: int) -> bytes:
        if length <= 0:
            return b""
        with self._request(CloudRequestOpType.READ, "ranged download", bucket, object_path) as req:
            data = self._blob(bucket, object_path).download_blob(
                offset=offset, length=length
            ).readall()
            req.size = len(data)
        return data

    def _download_object(self, bucket: str, object_path: str, local_path: str) -> None:
        with self._request(CloudRequestOpType.READ, "download", bucket, object_path) as req:
            with open(local_path, "wb") as f:
                req.size = self._blob(bucket, object_path).download_blob().readinto(f)

    def _upload_object(self, local_path: str, bucket: str, object_path: str) -> None:
        kwargs = {"overwrite": True}
        if self._options.server_side_encryption and self._azure_options.encryption_scope:
            kwargs["encryption_scope"] = self._azure_options.encryption_scope

        with self._request(CloudRequestOpType.WRITE, "upload", bucket, object_path,
                           size=os.path.getsize(local_path)):
            with open(local_path, "rb") as f:
                self._blob(bucket, object_path).upload_blob(f, **kwargs)
