"""
pytest configuration and fixtures for kvcloud tests

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: tests/conftest.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Test Configuration

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  In-memory storage provider, environment
                                fixtures and pytest-bdd context.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import hashlib
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import pytest

from kvcloud.cloud_env import CloudEnv
from kvcloud.errors import NotFoundError
from kvcloud.options import BucketOptions, CloudEnvOptions, CloudStorageProviderOptions
from kvcloud.providers.base import (
    CloudObjectInformation,
    CloudRequestOpType,
    CloudStorageProvider,
)


# =============================================================================
# In-memory Provider
# =============================================================================

@dataclass
class MemoryObject:
    data: bytes
    modification_time: int
    metadata: Dict[str, str] = field(default_factory=dict)


class MemoryStorageProvider(CloudStorageProvider):
    """
    Thread-safe in-memory provider.

    Implements the full provider contract against dictionaries so the
    environment, handles and purger can be exercised without a vendor.
    Failures can be injected per method with fail().
    """

    PROVIDER_NAME = "memory"

    def __init__(self, options: Optional[CloudStorageProviderOptions] = None):
        super().__init__(options)
        self.buckets: Dict[str, Dict[str, MemoryObject]] = {}
        self.calls: List[str] = []
        self._lock = threading.RLock()
        self._failures: Dict[str, List[Exception]] = {}

    def _create_client(self) -> Any:
        return self.buckets

    def fail(self, method: str, error: Exception, times: int = 1) -> None:
        """Make the next `times` calls of method raise error"""
        self._failures.setdefault(method, []).extend([error] * times)

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def _objects(self, bucket: str) -> Dict[str, MemoryObject]:
        if bucket not in self.buckets:
            raise NotFoundError("Bucket does not exist", bucket=bucket)
        return self.buckets[bucket]

    def _object(self, bucket: str, object_path: str) -> MemoryObject:
        objects = self._objects(bucket)
        if object_path not in objects:
            raise NotFoundError("Object does not exist", bucket, object_path)
        return objects[object_path]

    def put_bytes(self, bucket: str, object_path: str, data: bytes) -> None:
        """Seed an object directly, bypassing instrumentation"""
        with self._lock:
            self.buckets.setdefault(bucket, {})[object_path] = MemoryObject(
                data, int(time.time() * 1000)
            )

    def get_bytes(self, bucket: str, object_path: str) -> bytes:
        with self._lock:
            return self._object(bucket, object_path).data

    def create_bucket(self, bucket: str) -> None:
        with self._request(CloudRequestOpType.CREATE, "create bucket", bucket), self._lock:
            self._enter("create_bucket")
            self.buckets.setdefault(bucket, {})

    def exists_bucket(self, bucket: str) -> bool:
        with self._request(CloudRequestOpType.INFO, "exists bucket", bucket), self._lock:
            self._enter("exists_bucket")
            return bucket in self.buckets

    def empty_bucket(self, bucket: str, path_prefix: str = "") -> int:
        with self._request(CloudRequestOpType.DELETE, "empty bucket", bucket), self._lock:
            self._enter("empty_bucket")
            objects = self._objects(bucket)
            prefix = f"{path_prefix.strip('/')}/" if path_prefix.strip("/") else ""
            doomed = [key for key in objects if key.startswith(prefix)]
            for key in doomed:
                del objects[key]
            return len(doomed)

    def list_cloud_objects(self, bucket: str, path_prefix: str = "") -> List[str]:
        with self._request(CloudRequestOpType.LIST, "list", bucket, path_prefix), self._lock:
            self._enter("list_cloud_objects")
            prefix = f"{path_prefix.strip('/')}/" if path_prefix.strip("/") else ""
            return sorted(key[len(prefix):].lstrip("/")
                          for key in self._objects(bucket) if key.startswith(prefix))

    def delete_cloud_object(self, bucket: str, object_path: str) -> None:
        with self._request(CloudRequestOpType.DELETE, "delete", bucket, object_path), self._lock:
            self._enter("delete_cloud_object")
            self._object(bucket, object_path)
            del self.buckets[bucket][object_path]

    def get_cloud_object_metadata(self, bucket: str, object_path: str) -> CloudObjectInformation:
        with self._request(CloudRequestOpType.INFO, "head", bucket, object_path), self._lock:
            self._enter("get_cloud_object_metadata")
            obj = self._object(bucket, object_path)
            return CloudObjectInformation(
                size=len(obj.data),
                modification_time=obj.modification_time,
                content_hash=hashlib.md5(obj.data).hexdigest(),
                metadata=obj.metadata,
            )

    def copy_cloud_object(self, src_bucket: str, src_object_path: str,
                          dest_bucket: str, dest_object_path: str) -> None:
        with self._request(CloudRequestOpType.COPY, "copy", src_bucket, src_object_path), self._lock:
            self._enter("copy_cloud_object")
            source = self._object(src_bucket, src_object_path)
            self._objects(dest_bucket)[dest_object_path] = MemoryObject(
                source.data, int(time.time() * 1000), dict(source.metadata)
            )

    def put_cloud_object_metadata(self, bucket: str, object_path: str,
                                  metadata: Mapping[str, str]) -> None:
        with self._request(CloudRequestOpType.WRITE, "metadata", bucket, object_path), self._lock:
            self._enter("put_cloud_object_metadata")
            self._object(bucket, object_path).metadata = dict(metadata)

    def read_cloud_object_range(self, bucket: str, object_path: str,
                                offset: int, length: int) -> bytes:
        with self._request(CloudRequestOpType.READ, "read", bucket, object_path) as req, self._lock:
            self._enter("read_cloud_object_range")
            data = self._object(bucket, object_path).data[offset:offset + max(length, 0)]
            req.size = len(data)
            return data

    def _download_object(self, bucket: str, object_path: str, local_path: str) -> None:
        with self._request(CloudRequestOpType.READ, "download", bucket, object_path) as req:
            with self._lock:
                self._enter("get_cloud_object")
                data = self._object(bucket, object_path).data
            with open(local_path, "wb") as f:
                f.write(data)
            req.size = len(data)

    def _upload_object(self, local_path: str, bucket: str, object_path: str) -> None:
        with open(local_path, "rb") as f:
            data = f.read()
        with self._request(CloudRequestOpType.WRITE, "upload", bucket, object_path,
                           size=len(data)), self._lock:
            self._enter("put_cloud_object")
            self._objects(bucket)[object_path] = MemoryObject(data, int(time.time() * 1000))


# =============================================================================
# Callback Recorder
# =============================================================================

class CallbackRecorder:
    """Thread-safe request callback collecting every event"""

    def __init__(self):
        self.events: List[Any] = []
        self._lock = threading.Lock()

    def __call__(self, event) -> None:
        with self._lock:
            self.events.append(event)

    def ops(self) -> List[CloudRequestOpType]:
        with self._lock:
            return [event.op for event in self.events]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def recorder() -> CallbackRecorder:
    """Fresh request callback recorder"""
    return CallbackRecorder()


@pytest.fixture
def provider_options(recorder) -> CloudStorageProviderOptions:
    """Provider options with the recorder installed"""
    return CloudStorageProviderOptions(request_callback=recorder)


@pytest.fixture
def memory_provider_cls():
    """The in-memory provider class, for tests that build their own"""
    return MemoryStorageProvider


@pytest.fixture
def memory_provider(provider_options) -> MemoryStorageProvider:
    """Unprepared in-memory provider"""
    return MemoryStorageProvider(provider_options)


@pytest.fixture
def env_options(memory_provider) -> CloudEnvOptions:
    """Source snap-a and destination live-b, both with prefix db."""
    return CloudEnvOptions(
        src_bucket=BucketOptions("snap-a", "db", "us-west-2", prefix="db."),
        dest_bucket=BucketOptions("live-b", "db", "us-west-2", prefix="db."),
        storage_provider=memory_provider,
    )


@pytest.fixture
def live_files() -> List[str]:
    """Mutable liveness table handed to the environment"""
    return []


@pytest.fixture
def cloud_env(env_options, memory_provider, live_files):
    """Running environment whose source bucket already exists"""
    memory_provider.buckets["db.snap-a"] = {}
    env = CloudEnv(env_options, live_files=lambda: list(live_files))
    env.prepare()
    yield env
    env.close()


# =============================================================================
# BDD Context Fixtures
# =============================================================================

@dataclass
class BDDContext:
    """Shared context for BDD step definitions"""
    options: Optional[CloudEnvOptions] = None
    provider: Optional[MemoryStorageProvider] = None
    env: Optional[CloudEnv] = None
    last_result: Optional[Any] = None
    last_error: Optional[Exception] = None


@pytest.fixture
def bdd_context():
    """Fresh BDD context for each scenario"""
    context = BDDContext()
    yield context
    if context.env is not None:
        context.env.close()


# =============================================================================
# pytest-bdd Hooks
# =============================================================================

def pytest_bdd_step_error(request, feature, scenario, step, step_func, step_func_args, exception):
    """Log step errors for debugging"""
    print(f"\nStep failed: {step}")
    print(f"Exception: {exception}")

