"""
Cloud File Handles - Readable and writable handles over cloud objects

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/providers/files.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Core Implementation

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  File capability interfaces consumed by the
                                storage engine and the cloud handles that
                                implement them.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..errors import CloudError, CloudIOError

logger = logging.getLogger(__name__)


# =============================================================================
# File Capability Interfaces
# =============================================================================

class SequentialFile(ABC):
    """Forward-only reader"""

    @abstractmethod
    def read(self, n: int) -> bytes:
        """Read up to n bytes; fewer at end of file"""

    @abstractmethod
    def skip(self, n: int) -> None:
        """Advance the read position by n bytes"""


class RandomAccessFile(ABC):
    """Positional reader"""

    @abstractmethod
    def read_at(self, offset: int, n: int) -> bytes:
        """Read up to n bytes starting at offset"""


class WritableFile(ABC):
    """Append-only writer"""

    @abstractmethod
    def append(self, data: bytes) -> bool:
        """Append data at the end of the file"""

    @abstractmethod
    def flush(self) -> bool:
        """Push buffered data to the underlying storage"""

    @abstractmethod
    def sync(self) -> bool:
        """Make appended data durable"""

    @abstractmethod
    def close(self) -> bool:
        """Finish the file"""


@dataclass
class FileOptions:
    """Transport settings chosen when a handle is created"""
    readahead_size: int = 2 * 1024 * 1024
    write_buffer_size: int = 1024 * 1024
    max_retries: int = 2
    validate_filesize: bool = True


# =============================================================================
# Readable Handle
# =============================================================================

class CloudStorageReadableFile(SequentialFile, RandomAccessFile):
    """
    Read handle on one cloud object.

    Serves both sequential and positional reads with ranged GETs, keeping
    one readahead window. Not safe for concurrent use.
    """

    def __init__(self, provider, bucket: str, object_path: str, size: int,
                 options: Optional[FileOptions] = None):
        self._provider = provider
        self.bucket = bucket
        self.object_path = object_path
        self._size = size
        self._options = options or FileOptions()
        self._offset = 0
        self._window_start = 0
        self._window = b""

    @property
    def name(self) -> str:
        return "cloud"

    def size(self) -> int:
        return self._size

    def tell(self) -> int:
        return self._offset

    def read(self, n: int) -> bytes:
        data = self.read_at(self._offset, n)
        self._offset += len(data)
        return data

    def skip(self, n: int) -> None:
        self._offset = min(self._offset + max(n, 0), self._size)

    def read_at(self, offset: int, n: int) -> bytes:
        if n <= 0 or offset >= self._size:
            return b""
        n = min(n, self._size - offset)

        window_end = self._window_start + len(self._window)
        if not (self._window_start <= offset and offset + n <= window_end):
            length = min(max(n, self._options.readahead_size), self._size - offset)
            self._window = self._fetch(offset, length)
            self._window_start = offset

        start = offset - self._window_start
        return self._window[start:start + n]

    def _fetch(self, offset: int, length: int) -> bytes:
        attempt = 0
        while True:
            try:
                return self._provider.read_cloud_object_range(
                    self.bucket, self.object_path, offset, length
                )
            except CloudIOError as e:
                if attempt >= self._options.max_retries:
                    raise
                attempt += 1
                logger.warning(f"Retrying read of {self.bucket}/{self.object_path} "
                               f"at {offset} ({attempt}/{self._options.max_retries}): {e}")

    def close(self) -> None:
        self._window = b""


# =============================================================================
# Writable Handle
# =============================================================================

class CloudStorageWritableFile(WritableFile):
    """
    Append-only handle on a new cloud object.

    Appends go to local_path; close() uploads the complete file as one
    object. Failures do not raise: each call returns False and the error
    is kept in status(). Not safe for concurrent use.
    """

    def __init__(self, provider, local_path: str, bucket: str, object_path: str,
                 options: Optional[FileOptions] = None):
        self._provider = provider
        self.local_path = local_path
        self.bucket = bucket
        self.object_path = object_path
        self._options = options or FileOptions()
        self._status: Optional[CloudError] = None
        self._closed = False
        self._size = 0
        self._close_listeners: List[Callable[["CloudStorageWritableFile"], None]] = []

        try:
            self._file = open(local_path, "wb", buffering=self._options.write_buffer_size)
        except OSError as e:
            self._file = None
            self._closed = True
            self._status = CloudIOError(f"Cannot create local file {local_path}: {e}",
                                        bucket=bucket, object_path=object_path)
            logger.error(str(self._status))

    @property
    def name(self) -> str:
        return "cloud"

    def status(self) -> Optional[CloudError]:
        """Error of the last failed operation, or None"""
        return self._status

    def size(self) -> int:
        return self._size

    def add_close_listener(self, listener: Callable[["CloudStorageWritableFile"], None]) -> None:
        self._close_listeners.append(listener)

    def append(self, data: bytes) -> bool:
        if not self._usable("append"):
            return False
        try:
            self._file.write(data)
            self._size += len(data)
            return True
        except OSError as e:
            return self._fail(f"Append to {self.local_path} failed: {e}")

    def flush(self) -> bool:
        if not self._usable("flush"):
            return False
        try:
            self._file.flush()
            return True
        except OSError as e:
            return self._fail(f"Flush of {self.local_path} failed: {e}")

    def sync(self) -> bool:
        # durability comes from the upload in close()
        return self.flush()

    def close(self) -> bool:
        if self._closed:
            self._notify_closed()
            return self._status is None

        self._closed = True
        try:
            try:
                self._file.close()
            except OSError as e:
                return self._fail(f"Close of {self.local_path} failed: {e}")

            if self._status is not None:
                # the local file is incomplete; never publish it
                logger.error(f"Not uploading {self.bucket}/{self.object_path}: {self._status}")
                return False

            try:
                self._provider.put_cloud_object(self.local_path, self.bucket, self.object_path)
                if self._options.validate_filesize:
                    remote_size = self._provider.get_cloud_object_size(self.bucket, self.object_path)
                    if remote_size != self._size:
                        raise CloudIOError(
                            f"Uploaded size {remote_size} does not match local size {self._size}",
                            bucket=self.bucket, object_path=self.object_path,
                        )
            except CloudError as e:
                self._status = e
                logger.error(f"Upload of {self.local_path} failed: {e}")
                return False

            logger.debug(f"Closed cloud file {self.bucket}/{self.object_path} ({self._size} bytes)")
            return True
        finally:
            self._notify_closed()

    def _notify_closed(self) -> None:
        listeners, self._close_listeners = self._close_listeners, []
        for listener in listeners:
            listener(self)

    def _usable(self, action: str) -> bool:
        if self._status is not None:
            return False
        if self._closed:
            self._status = CloudIOError(f"Cannot {action} a closed file",
                                        bucket=self.bucket, object_path=self.object_path)
            return False
        return True

    def _fail(self, message: str) -> bool:
        self._status = CloudIOError(message, bucket=self.bucket, object_path=self.object_path)
        logger.error(message)
        return False
