"""
Base Storage Provider - Abstract interface over one cloud object store

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/providers/base.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Core Implementation

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Abstract provider defining bucket and object
                                operations, request instrumentation, typed
                                option registry and two-phase preparation.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import logging
import os
import threading
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Generator, List, Mapping, Optional, Type

from ..errors import (
    CloudError,
    InvalidConfigurationError,
    NotFoundError,
    NotSupportedError,
)
from ..options import CloudStorageProviderOptions
from .files import CloudStorageReadableFile, CloudStorageWritableFile, FileOptions

logger = logging.getLogger(__name__)

# Registry key under which every provider exposes its own configuration
PROVIDER_OPTIONS = "provider_options"


# =============================================================================
# Object Information and Request Events
# =============================================================================

class CloudRequestOpType(Enum):
    """Kind of vendor call reported to the request callback"""
    READ = "read"
    WRITE = "write"
    LIST = "list"
    CREATE = "create"
    DELETE = "delete"
    COPY = "copy"
    INFO = "info"


@dataclass(frozen=True)
class CloudRequestEvent:
    """One completed vendor call"""
    op: CloudRequestOpType
    size: int
    latency_us: int
    success: bool


@dataclass(frozen=True)
class CloudObjectInformation:
    """
    Snapshot of an object's properties.

    content_hash is vendor-defined (the ETag on S3 and Azure) and must be
    treated as opaque.
    """
    size: int
    modification_time: int  # epoch milliseconds
    content_hash: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))


class RequestTracker:
    """Mutable byte counter handed to the body of an instrumented call"""

    def __init__(self, size: int = 0):
        self.size = size


# =============================================================================
# Abstract Cloud Storage Provider
# =============================================================================

class CloudStorageProvider(ABC):
    """
    Abstract base class for cloud storage providers.

    Subclasses talk to exactly one vendor. Every public operation raises a
    CloudError subclass on failure: NotFoundError for absent buckets and
    objects, CloudIOError for transport failures the caller may retry and
    InvalidConfigurationError for configuration or authorization problems.
    Providers never retry on their own; the retry policy is handed to the
    vendor transport.

    Usage:
        provider = ProviderFactory.create("s3", options)
        provider.prepare(env)
        provider.put_cloud_object("/tmp/000012.sst", "kvcloud.live", "db/000012.sst")
        provider.close()
    """

    PROVIDER_NAME = "cloud"
    available = True

    def __init__(self, options: Optional[CloudStorageProviderOptions] = None):
        """
        Initialize provider. No network I/O happens here.

        Args:
            options: Provider configuration; a private copy is kept
        """
        if not self.available:
            raise NotSupportedError(
                f"Cloud provider '{self.PROVIDER_NAME}' is not available; "
                f"its SDK is not installed"
            )

        self._options = (options or CloudStorageProviderOptions()).copy()
        self._region: Optional[str] = None
        self._client: Any = None
        self._client_lock = threading.Lock()
        self._registry: Dict[str, Any] = {PROVIDER_OPTIONS: self._options}

    @property
    def name(self) -> str:
        return self.PROVIDER_NAME

    @property
    def options(self) -> CloudStorageProviderOptions:
        return self._options

    @property
    def region(self) -> Optional[str]:
        return self._region

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, region={self._region!r})"

    # -------------------------------------------------------------------------
    # Client lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    def _create_client(self) -> Any:
        """Build the vendor SDK client"""

    @property
    def client(self) -> Any:
        """Vendor client, created on first use"""
        with self._client_lock:
            if self._client is None:
                self._client = self._create_client()
                logger.info(f"Created {self.name} client (region: {self._region or 'default'})")
            return self._client

    def connect(self) -> None:
        """Create the vendor client now instead of on first use"""
        _ = self.client

    def close(self) -> None:
        """Release the vendor client"""
        with self._client_lock:
            self._client = None

    def prepare(self, env) -> None:
        """
        Validate the provider against its owning environment.

        Called once after construction and before any other operation. The
        destination bucket, when configured, is created if missing (unless
        disabled); a distinct source bucket must already exist.

        Args:
            env: Owning CloudEnv

        Raises:
            InvalidConfigurationError: If a bucket is unusable
        """
        src = env.src_bucket
        dest = env.dest_bucket
        self._region = (dest.region if dest.is_valid() else src.region) or None

        self.connect()

        if dest.is_valid() and not self.exists_bucket(dest.name):
            if not self._options.create_bucket_if_missing:
                raise InvalidConfigurationError(
                    "Destination bucket does not exist", bucket=dest.name
                )
            logger.info(f"Creating destination bucket {dest.name}")
            self.create_bucket(dest.name)

        if src.is_valid() and src.name != dest.name and not self.exists_bucket(src.name):
            raise InvalidConfigurationError("Source bucket does not exist", bucket=src.name)

        logger.info(f"Prepared {self.name} provider (src: {src.name or '-'}, "
                    f"dest: {dest.name or '-'})")

    def dump(self, log: Optional[logging.Logger] = None) -> None:
        """Print the provider configuration to the log"""
        log = log or logger
        log.info(f"  provider.name: {self.name}")
        log.info(f"  provider.region: {self._region or '<default>'}")
        self._options.dump(log)

    # -------------------------------------------------------------------------
    # Typed option registry
    # -------------------------------------------------------------------------

    def register_options(self, name: str, value: Any) -> None:
        """Expose a named sub-component to callers of get_options()"""
        self._registry[name] = value

    def get_options(self, name: str, expected_type: Optional[Type] = None) -> Any:
        """
        Look up a named sub-component.

        Args:
            name: Registry key
            expected_type: If given, the value must be an instance of it

        Returns:
            The registered value, or None when absent or of another type
        """
        value = self._registry.get(name)
        if value is None:
            return None
        if expected_type is not None and not isinstance(value, expected_type):
            return None
        return value

    def cast_as(self, name: str) -> Optional["CloudStorageProvider"]:
        """Return self if it is known under name (provider or class name)"""
        if name == self.name:
            return self
        for cls in type(self).__mro__:
            if cls.__name__ == name or getattr(cls, "PROVIDER_NAME", None) == name:
                return self
        return None

    # -------------------------------------------------------------------------
    # Instrumentation
    # -------------------------------------------------------------------------

    def _translate_error(self, error: Exception, action: str, bucket: Optional[str],
                         object_path: Optional[str]) -> Optional[CloudError]:
        """Map a vendor exception to a CloudError; None leaves it untouched"""
        return None

    @contextmanager
    def _request(self, op: CloudRequestOpType, action: str, bucket: Optional[str] = None,
                 object_path: Optional[str] = None,
                 size: int = 0) -> Generator[RequestTracker, None, None]:
        """
        Wrap one vendor call.

        Translates vendor exceptions and fires the request callback exactly
        once after the call, whatever its outcome.
        """
        tracker = RequestTracker(size)
        start = time.monotonic()
        success = False
        try:
            yield tracker
            success = True
        except CloudError:
            raise
        except Exception as e:
            error = self._translate_error(e, action, bucket, object_path)
            if error is None:
                raise
            raise error from e
        finally:
            latency_us = int((time.monotonic() - start) * 1_000_000)
            self._notify(CloudRequestEvent(op, tracker.size, latency_us, success))

    def _notify(self, event: CloudRequestEvent) -> None:
        callback = self._options.request_callback
        if callback is None:
            return
        try:
            callback(event)
        except Exception:
            logger.exception(f"Request callback failed for {event.op.value} event")

    # -------------------------------------------------------------------------
    # Bucket operations
    # -------------------------------------------------------------------------

    @abstractmethod
    def create_bucket(self, bucket: str) -> None:
        """Create a bucket; an existing bucket we own is not an error"""

    @abstractmethod
    def exists_bucket(self, bucket: str) -> bool:
        """True if the bucket exists, False if it does not"""

    @abstractmethod
    def empty_bucket(self, bucket: str, path_prefix: str = "") -> int:
        """Delete every object under path_prefix; returns the number deleted"""

    @abstractmethod
    def list_cloud_objects(self, bucket: str, path_prefix: str = "") -> List[str]:
        """Complete listing of object names relative to path_prefix"""

    # -------------------------------------------------------------------------
    # Object operations
    # -------------------------------------------------------------------------

    @abstractmethod
    def delete_cloud_object(self, bucket: str, object_path: str) -> None:
        """Delete an object; raises NotFoundError if it does not exist"""

    @abstractmethod
    def get_cloud_object_metadata(self, bucket: str, object_path: str) -> CloudObjectInformation:
        """Size, modification time, content hash and metadata of an object"""

    @abstractmethod
    def copy_cloud_object(self, src_bucket: str, src_object_path: str,
                          dest_bucket: str, dest_object_path: str) -> None:
        """Vendor-side copy preserving metadata"""

    @abstractmethod
    def put_cloud_object_metadata(self, bucket: str, object_path: str,
                                  metadata: Mapping[str, str]) -> None:
        """Replace the metadata of an object"""

    @abstractmethod
    def read_cloud_object_range(self, bucket: str, object_path: str,
                                offset: int, length: int) -> bytes:
        """Read length bytes starting at offset"""

    @abstractmethod
    def _download_object(self, bucket: str, object_path: str, local_path: str) -> None:
        """Stream an object into local_path"""

    @abstractmethod
    def _upload_object(self, local_path: str, bucket: str, object_path: str) -> None:
        """Upload local_path as a single object"""

    def exists_cloud_object(self, bucket: str, object_path: str) -> bool:
        try:
            self.get_cloud_object_metadata(bucket, object_path)
        except NotFoundError:
            return False
        return True

    def get_cloud_object_size(self, bucket: str, object_path: str) -> int:
        return self.get_cloud_object_metadata(bucket, object_path).size

    def get_cloud_object_modification_time(self, bucket: str, object_path: str) -> int:
        return self.get_cloud_object_metadata(bucket, object_path).modification_time

    def get_cloud_object(self, bucket: str, object_path: str, local_path: str) -> int:
        """
        Download an object into local_path.

        The body is written to a temporary sibling first and renamed into
        place once complete, so local_path never holds a partial object.

        Returns:
            Number of bytes downloaded
        """
        tmp_path = f"{local_path}.{uuid.uuid4().hex[:8]}.tmp"
        try:
            self._download_object(bucket, object_path, tmp_path)
            os.replace(tmp_path, local_path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

        size = os.path.getsize(local_path)
        logger.debug(f"Downloaded {bucket}/{object_path} to {local_path} ({size} bytes)")
        return size

    def put_cloud_object(self, local_path: str, bucket: str, object_path: str) -> int:
        """
        Upload a local file as one object.

        Returns:
            Number of bytes uploaded

        Raises:
            NotFoundError: If local_path does not exist
        """
        if not os.path.isfile(local_path):
            raise NotFoundError(f"Local file {local_path} does not exist",
                                bucket=bucket, object_path=object_path)

        self._upload_object(local_path, bucket, object_path)
        size = os.path.getsize(local_path)
        logger.debug(f"Uploaded {local_path} to {bucket}/{object_path} ({size} bytes)")
        return size

    # -------------------------------------------------------------------------
    # Handles
    # -------------------------------------------------------------------------

    def new_cloud_writable_file(self, local_path: str, bucket: str, object_path: str,
                                options: Optional[FileOptions] = None) -> CloudStorageWritableFile:
        """Append-only handle buffered in local_path and uploaded on close()"""
        return CloudStorageWritableFile(self, local_path, bucket, object_path, options)

    def new_cloud_readable_file(self, bucket: str, object_path: str,
                                options: Optional[FileOptions] = None) -> CloudStorageReadableFile:
        """
        Sequential and random-access handle on an existing object.

        Raises:
            NotFoundError: If the object does not exist
        """
        size = self.get_cloud_object_size(bucket, object_path)
        return CloudStorageReadableFile(self, bucket, object_path, size, options)
