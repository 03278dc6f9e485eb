"""
Cloud Environment - Routes engine file operations to a storage provider

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/cloud_env.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Core Implementation

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Environment lifecycle (construct, prepare,
                                run, shut down), source/destination routing,
                                in-flight writer tracking for the purger.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import logging
import threading
from collections import Counter
from dataclasses import replace
from enum import Enum
from typing import Callable, Iterable, List, Optional, Set

from .errors import (
    CloudIOError,
    EnvironmentStateError,
    InvalidConfigurationError,
    NotFoundError,
)
from .filename import basename, object_key
from .options import BucketOptions, CloudEnvOptions, CloudStorageProviderOptions
from .providers.base import CloudStorageProvider
from .providers.factory import create_provider
from .providers.files import CloudStorageReadableFile, CloudStorageWritableFile, FileOptions
from .purger import CloudPurger

logger = logging.getLogger(__name__)


class CloudEnvState(Enum):
    """Lifecycle of a CloudEnv"""
    CONSTRUCTED = "constructed"
    PREPARED = "prepared"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    DESTROYED = "destroyed"


class CloudEnv:
    """
    Cloud environment for one database.

    Reads resolve against the destination first and fall back to the
    source; writes always go to the destination. Construction performs no
    I/O; prepare() validates the configuration, prepares the provider and
    starts the purger.

    Usage:
        env = CloudEnv(options, live_files=db.live_files)
        env.prepare()
        env.upload_file("/data/000012.sst", "000012.sst")
        env.close()
    """

    def __init__(self, options: CloudEnvOptions,
                 live_files: Optional[Callable[[], Iterable[str]]] = None,
                 info_log: Optional[logging.Logger] = None):
        """
        Initialize environment.

        Args:
            options: Environment configuration; the bucket descriptors are copied
            live_files: Returns the names of files the engine still references
            info_log: Logger for configuration dumps

        Raises:
            InvalidConfigurationError: If no storage provider is configured
        """
        if options.storage_provider is None:
            raise InvalidConfigurationError("CloudEnv requires a storage provider")

        self._options = replace(
            options,
            src_bucket=options.src_bucket.copy(),
            dest_bucket=options.dest_bucket.copy(),
        )
        self._provider: CloudStorageProvider = options.storage_provider
        self._live_files = live_files
        self._info_log = info_log or logger
        self._state = CloudEnvState.CONSTRUCTED
        self._state_lock = threading.Lock()
        self._purger: Optional[CloudPurger] = None

        # in-flight writers and names opened for write during a purge cycle
        self._writers_lock = threading.Lock()
        self._pending_writers: Counter = Counter()
        self._write_guard: Optional[Set[str]] = None

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def new_cloud_env(cls, provider_name: str,
                      src_bucket: str = "", src_object: str = "", src_region: str = "",
                      dest_bucket: str = "", dest_object: str = "", dest_region: str = "",
                      options: Optional[CloudEnvOptions] = None,
                      info_log: Optional[logging.Logger] = None,
                      live_files: Optional[Callable[[], Iterable[str]]] = None,
                      provider_options: Optional[CloudStorageProviderOptions] = None,
                      **provider_kwargs) -> "CloudEnv":
        """
        Build an unprepared environment with a provider from the registry.

        Non-empty bucket, object and region arguments override the
        corresponding fields of options. No thread is started.

        Raises:
            NotSupportedError: If the provider is unknown or unavailable
        """
        log = info_log or logger
        options = options or CloudEnvOptions()
        options = replace(
            options,
            src_bucket=options.src_bucket.copy(),
            dest_bucket=options.dest_bucket.copy(),
        )

        for bucket_options, bucket, object_path, region in (
            (options.src_bucket, src_bucket, src_object, src_region),
            (options.dest_bucket, dest_bucket, dest_object, dest_region),
        ):
            if bucket:
                bucket_options.set_bucket_name(bucket)
            if object_path:
                bucket_options.set_object_path(object_path)
            if region:
                bucket_options.set_region(region)

        if options.storage_provider is None:
            provider_options = provider_options or CloudStorageProviderOptions()
            if not provider_options.credentials.has_valid() and options.credentials.has_valid():
                provider_options = replace(provider_options, credentials=options.credentials)
            options.storage_provider = create_provider(provider_name, provider_options,
                                                       **provider_kwargs)

        log.info(f"Creating cloud environment on '{provider_name}':")
        options.dump(log)
        return cls(options, live_files=live_files, info_log=log)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def options(self) -> CloudEnvOptions:
        return self._options

    @property
    def src_bucket(self) -> BucketOptions:
        return self._options.src_bucket

    @property
    def dest_bucket(self) -> BucketOptions:
        return self._options.dest_bucket

    @property
    def provider(self) -> CloudStorageProvider:
        return self._provider

    @property
    def state(self) -> CloudEnvState:
        return self._state

    @property
    def purger(self) -> Optional[CloudPurger]:
        return self._purger

    def _has_dest(self) -> bool:
        return self.dest_bucket.is_valid()

    def _has_src(self) -> bool:
        return self.src_bucket.is_valid()

    def _src_differs(self) -> bool:
        src, dest = self.src_bucket, self.dest_bucket
        return src.name != dest.name or src.object_path != dest.object_path

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def prepare(self) -> None:
        """
        Validate configuration, prepare the provider and start serving.

        Raises:
            EnvironmentStateError: If prepare() was already called successfully
            InvalidConfigurationError: If the configuration is unusable
            CloudError: If the provider cannot be prepared
        """
        with self._state_lock:
            if self._state is not CloudEnvState.CONSTRUCTED:
                raise EnvironmentStateError(
                    f"Cannot prepare an environment in state {self._state.value}"
                )

            if not self._has_src() and not self._has_dest():
                raise InvalidConfigurationError(
                    "Neither source nor destination bucket is configured"
                )
            if self._options.run_purger:
                if not self._has_dest():
                    raise InvalidConfigurationError(
                        "The purger requires a valid destination bucket"
                    )
                if self._live_files is None:
                    raise InvalidConfigurationError(
                        "The purger requires a live_files source"
                    )
                if self._options.purger_periodicity_ms <= 0:
                    raise InvalidConfigurationError(
                        f"Purger periodicity must be positive, got "
                        f"{self._options.purger_periodicity_ms} ms"
                    )

            self._provider.prepare(self)
            self._state = CloudEnvState.PREPARED

            if self._has_dest() and self._options.run_purger:
                self._purger = CloudPurger(self, self._options.purger_periodicity_ms)
                self._purger.start()

            self._state = CloudEnvState.RUNNING

        logger.info(f"Cloud environment running (src: {self.src_bucket.name or '-'}, "
                    f"dest: {self.dest_bucket.name or '-'})")

    def close(self) -> None:
        """Stop the purger and release the provider. Safe to call repeatedly."""
        with self._state_lock:
            if self._state in (CloudEnvState.SHUTTING_DOWN, CloudEnvState.DESTROYED):
                return
            self._state = CloudEnvState.SHUTTING_DOWN

        if self._purger is not None:
            self._purger.stop()
            self._purger = None
        self._provider.close()

        self._state = CloudEnvState.DESTROYED
        logger.info("Cloud environment closed")

    def __enter__(self) -> "CloudEnv":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def dump(self, log: Optional[logging.Logger] = None) -> None:
        log = log or self._info_log
        log.info(f"  env.state: {self._state.value}")
        self._options.dump(log)

    def _require_running(self) -> None:
        if self._state is not CloudEnvState.RUNNING:
            raise EnvironmentStateError(
                f"Cloud environment is {self._state.value}, not running"
            )

    def _require_dest(self) -> None:
        if not self._has_dest():
            raise InvalidConfigurationError("No destination bucket configured")

    # -------------------------------------------------------------------------
    # Path resolution
    # -------------------------------------------------------------------------

    def get_src_object_path(self, fname: str) -> str:
        """Object key of fname in the source location"""
        return object_key(self.src_bucket.object_path, fname)

    def get_dest_object_path(self, fname: str) -> str:
        """Object key of fname in the destination location"""
        return object_key(self.dest_bucket.object_path, fname)

    def _locations(self, fname: str) -> List[tuple]:
        """(bucket, key) pairs to try for a read, destination first"""
        locations = []
        if self._has_dest():
            locations.append((self.dest_bucket.name, self.get_dest_object_path(fname)))
        if self._has_src() and (not self._has_dest() or self._src_differs()):
            locations.append((self.src_bucket.name, self.get_src_object_path(fname)))
        return locations

    def _resolve(self, fname: str, operation: Callable):
        """Run operation(bucket, key) on the first location holding fname"""
        self._require_running()
        error: Optional[NotFoundError] = None
        for bucket, key in self._locations(fname):
            try:
                return operation(bucket, key)
            except NotFoundError as e:
                error = e
        raise error or NotFoundError(f"File {fname} not found")

    # -------------------------------------------------------------------------
    # Write tracking (used by the purger)
    # -------------------------------------------------------------------------

    def _begin_write(self, fname: str) -> str:
        name = basename(fname)
        with self._writers_lock:
            self._pending_writers[name] += 1
            if self._write_guard is not None:
                self._write_guard.add(name)
        return name

    def _end_write(self, name: str) -> None:
        with self._writers_lock:
            self._pending_writers[name] -= 1
            if self._pending_writers[name] <= 0:
                del self._pending_writers[name]

    def pending_writers(self) -> Set[str]:
        with self._writers_lock:
            return set(self._pending_writers)

    def snapshot_live_files(self) -> Set[str]:
        """
        Snapshot the liveness table and start guarding new writes.

        Names opened for write after this call are reported by
        is_write_guarded() until release_write_guard().
        """
        with self._writers_lock:
            pending = set(self._pending_writers)
            self._write_guard = set()
        live = {basename(name) for name in (self._live_files() if self._live_files else [])}
        return live | pending

    def is_write_guarded(self, name: str) -> bool:
        with self._writers_lock:
            if name in self._pending_writers:
                return True
            return self._write_guard is not None and name in self._write_guard

    def release_write_guard(self) -> None:
        with self._writers_lock:
            self._write_guard = None

    # -------------------------------------------------------------------------
    # File operations
    # -------------------------------------------------------------------------

    def _file_options(self, options: Optional[FileOptions]) -> FileOptions:
        if options is not None:
            return options
        return FileOptions(validate_filesize=self._options.validate_filesize)

    def new_sequential_file(self, fname: str,
                            options: Optional[FileOptions] = None) -> CloudStorageReadableFile:
        """Sequential reader on fname (destination first, then source)"""
        return self.new_random_access_file(fname, options)

    def new_random_access_file(self, fname: str,
                               options: Optional[FileOptions] = None) -> CloudStorageReadableFile:
        """
        Positional reader on fname (destination first, then source).

        Raises:
            NotFoundError: If neither location holds fname
        """
        options = self._file_options(options)
        return self._resolve(
            fname,
            lambda bucket, key: self._provider.new_cloud_readable_file(bucket, key, options),
        )

    def new_writable_file(self, fname: str, local_path: str,
                          options: Optional[FileOptions] = None) -> CloudStorageWritableFile:
        """
        Append-only writer on fname in the destination.

        The data is buffered in local_path and uploaded when the handle is
        closed. Until then the purger leaves fname alone.
        """
        self._require_running()
        self._require_dest()

        name = self._begin_write(fname)
        try:
            handle = self._provider.new_cloud_writable_file(
                local_path, self.dest_bucket.name, self.get_dest_object_path(fname),
                self._file_options(options),
            )
        except Exception:
            self._end_write(name)
            raise
        handle.add_close_listener(lambda _: self._end_write(name))
        logger.debug(f"Opened {fname} for write (local: {local_path})")
        return handle

    def file_exists(self, fname: str) -> bool:
        self._require_running()
        for bucket, key in self._locations(fname):
            if self._provider.exists_cloud_object(bucket, key):
                return True
        return False

    def get_file_size(self, fname: str) -> int:
        return self._resolve(fname, self._provider.get_cloud_object_size)

    def get_file_modification_time(self, fname: str) -> int:
        """Modification time of fname in epoch milliseconds"""
        return self._resolve(fname, self._provider.get_cloud_object_modification_time)

    def delete_file(self, fname: str) -> None:
        """Delete fname from the destination; the source is never modified"""
        self._require_running()
        self._require_dest()
        self._provider.delete_cloud_object(self.dest_bucket.name, self.get_dest_object_path(fname))
        logger.debug(f"Deleted {fname} from {self.dest_bucket.name}")

    def get_children(self) -> List[str]:
        """Names under the destination object path (the source when no destination is set)"""
        self._require_running()
        bucket = self.dest_bucket if self._has_dest() else self.src_bucket
        return self._provider.list_cloud_objects(bucket.name, bucket.object_path)

    def upload_file(self, local_path: str, fname: str) -> int:
        """
        Upload a local file as fname in the destination.

        Returns:
            Number of bytes uploaded

        Raises:
            CloudIOError: If the uploaded size does not match (validate_filesize)
        """
        self._require_running()
        self._require_dest()

        bucket, key = self.dest_bucket.name, self.get_dest_object_path(fname)
        name = self._begin_write(fname)
        try:
            size = self._provider.put_cloud_object(local_path, bucket, key)
            if self._options.validate_filesize:
                remote_size = self._provider.get_cloud_object_size(bucket, key)
                if remote_size != size:
                    raise CloudIOError(
                        f"Uploaded size {remote_size} does not match local size {size}",
                        bucket=bucket, object_path=key,
                    )
        finally:
            self._end_write(name)

        logger.debug(f"Uploaded {local_path} as {fname} ({size} bytes)")
        return size

    def download_file(self, fname: str, local_path: str) -> int:
        """Download fname (destination first, then source) into local_path"""
        return self._resolve(
            fname,
            lambda bucket, key: self._provider.get_cloud_object(bucket, key, local_path),
        )

    def copy_file(self, src_fname: str, dest_fname: str) -> None:
        """Copy src_fname from the source location to dest_fname in the destination"""
        self._require_running()
        self._require_dest()
        if not self._has_src():
            raise InvalidConfigurationError("No source bucket configured")

        name = self._begin_write(dest_fname)
        try:
            self._provider.copy_cloud_object(
                self.src_bucket.name, self.get_src_object_path(src_fname),
                self.dest_bucket.name, self.get_dest_object_path(dest_fname),
            )
        finally:
            self._end_write(name)
        logger.debug(f"Copied {src_fname} to {dest_fname}")
