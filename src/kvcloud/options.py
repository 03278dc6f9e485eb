"""
Cloud Options - Bucket descriptors, provider and environment configuration

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/options.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Configuration

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Bucket descriptor with derived name,
                                provider options, environment options and
                                injectable environment-variable resolution.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import getpass
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_PREFIX = "kvcloud."

# (primary, fallback) variable names, first match wins
ENV_BUCKET_NAME = ("KVCLOUD_TEST_BUCKET_NAME", "KVCLOUD_BUCKET_NAME")
ENV_BUCKET_PREFIX = ("KVCLOUD_TEST_BUCKET_PREFIX", "KVCLOUD_BUCKET_PREFIX")
ENV_OBJECT_PATH = ("KVCLOUD_TEST_OBJECT_PATH", "KVCLOUD_OBJECT_PATH")
ENV_REGION = ("KVCLOUD_TEST_REGION", "KVCLOUD_REGION")
ENV_ACCESS_KEY_ID = ("AWS_ACCESS_KEY_ID", None)
ENV_SECRET_KEY = ("AWS_SECRET_ACCESS_KEY", None)


# =============================================================================
# Environment Variable Resolution
# =============================================================================

def get_name_from_environment(name: str, alt: Optional[str] = None,
                              environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Look up a setting by its primary variable name, then its fallback.

    Args:
        name: Primary variable name
        alt: Fallback variable name, consulted only when name is unset
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        The value, or None when neither variable is set
    """
    environ = os.environ if environ is None else environ
    value = environ.get(name)
    if value is None and alt is not None:
        value = environ.get(alt)
    return value


def resolve_from_environment(pairs: Sequence[Tuple[str, Optional[str]]],
                             environ: Optional[Mapping[str, str]] = None) -> List[Optional[str]]:
    """Resolve an ordered list of (primary, fallback) pairs"""
    return [get_name_from_environment(name, alt, environ) for name, alt in pairs]


def _default_user_suffix() -> str:
    if hasattr(os, "geteuid"):
        return str(os.geteuid())
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


# =============================================================================
# Bucket Descriptor
# =============================================================================

class BucketOptions:
    """
    Identifies a logical (prefix, bucket, object path, region) location.

    The vendor bucket name is ``prefix + bucket``. It is recomputed on every
    change of bucket or prefix and is empty exactly when bucket is empty,
    which marks the descriptor as unset.
    """

    def __init__(self, bucket: str = "", object_path: str = "", region: str = "",
                 prefix: str = DEFAULT_BUCKET_PREFIX):
        self._prefix = prefix
        self._bucket = ""
        self._name = ""
        self._object_path = object_path
        self._region = region
        self.set_bucket_name(bucket)

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def name(self) -> str:
        """Vendor bucket name (prefix + bucket)"""
        return self._name

    @property
    def object_path(self) -> str:
        return self._object_path

    @property
    def region(self) -> str:
        return self._region

    def set_bucket_name(self, bucket: str, prefix: str = "") -> None:
        """
        Set the bucket and optionally override the prefix.

        Args:
            bucket: Logical bucket name; empty clears the derived name
            prefix: New prefix; empty keeps the current one
        """
        if prefix:
            self._prefix = prefix
        self._bucket = bucket
        self._name = self._prefix + self._bucket if self._bucket else ""

    def set_object_path(self, object_path: str) -> None:
        self._object_path = object_path

    def set_region(self, region: str) -> None:
        self._region = region

    def is_valid(self) -> bool:
        return bool(self._name)

    def test_initialize(self, bucket: str, object_path: str, region: str,
                        environ: Optional[Mapping[str, str]] = None,
                        user_suffix: Optional[Callable[[], str]] = None) -> None:
        """
        Initialize from test/bootstrap environment variables.

        Variables override the arguments. Without a bucket variable the
        bucket becomes ``bucket`` plus a per-user suffix so concurrent test
        runs on one account do not collide.
        """
        env_bucket, env_prefix, env_object, env_region = resolve_from_environment(
            [ENV_BUCKET_NAME, ENV_BUCKET_PREFIX, ENV_OBJECT_PATH, ENV_REGION], environ
        )

        if env_bucket is None:
            env_bucket = bucket + (user_suffix or _default_user_suffix)()
        if env_prefix is not None:
            self._prefix = env_prefix
        # explicit assignment: an empty prefix from the environment is honoured
        self._bucket = env_bucket
        self._name = self._prefix + self._bucket if self._bucket else ""
        self._object_path = object_path if env_object is None else env_object
        self._region = region if env_region is None else env_region

    def copy(self) -> "BucketOptions":
        clone = BucketOptions(object_path=self._object_path, region=self._region,
                              prefix=self._prefix)
        clone.set_bucket_name(self._bucket)
        return clone

    def to_dict(self) -> dict:
        return {
            "prefix": self._prefix,
            "bucket": self._bucket,
            "name": self._name,
            "object_path": self._object_path,
            "region": self._region,
        }

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, BucketOptions):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (f"BucketOptions(name={self._name!r}, object_path={self._object_path!r}, "
                f"region={self._region!r})")


# =============================================================================
# Provider Configuration
# =============================================================================

@dataclass
class CloudCredentials:
    """Vendor credentials; empty values defer to the SDK's own resolution"""
    access_key_id: Optional[str] = None
    secret_key: Optional[str] = field(default=None, repr=False)
    session_token: Optional[str] = field(default=None, repr=False)

    def has_valid(self) -> bool:
        return bool(self.access_key_id and self.secret_key)

    def test_initialize(self, environ: Optional[Mapping[str, str]] = None) -> None:
        access_key_id, secret_key = resolve_from_environment(
            [ENV_ACCESS_KEY_ID, ENV_SECRET_KEY], environ
        )
        if access_key_id is not None:
            self.access_key_id = access_key_id
        if secret_key is not None:
            self.secret_key = secret_key

    def masked(self) -> str:
        if not self.access_key_id:
            return "<sdk default>"
        return f"{self.access_key_id[:4]}****"


@dataclass
class CloudOptions:
    """Options common to every vendor"""
    credentials: CloudCredentials = field(default_factory=CloudCredentials)
    max_retries: int = 3
    retry_mode: str = "standard"  # legacy, standard, adaptive


@dataclass
class CloudStorageProviderOptions(CloudOptions):
    """
    Provider configuration.

    A timeout of 0 defers to the vendor transport default. The request
    callback is invoked after every vendor call with a CloudRequestEvent
    and may be called from several threads at once.
    """
    request_timeout_ms: int = 600000
    connect_timeout_ms: int = 30000
    server_side_encryption: bool = False
    encryption_key_id: Optional[str] = None
    request_callback: Optional[Callable[[Any], None]] = None
    endpoint_url: Optional[str] = None  # S3-compatible endpoints
    create_bucket_if_missing: bool = True

    def copy(self) -> "CloudStorageProviderOptions":
        return replace(self, credentials=replace(self.credentials))

    def dump(self, log: Optional[logging.Logger] = None) -> None:
        log = log or logger
        log.info(f"  provider.credentials: {self.credentials.masked()}")
        log.info(f"  provider.max_retries: {self.max_retries} ({self.retry_mode})")
        log.info(f"  provider.request_timeout_ms: {self.request_timeout_ms}")
        log.info(f"  provider.connect_timeout_ms: {self.connect_timeout_ms}")
        log.info(f"  provider.server_side_encryption: {self.server_side_encryption}")
        log.info(f"  provider.encryption_key_id: {self.encryption_key_id or ''}")
        log.info(f"  provider.endpoint_url: {self.endpoint_url or '<vendor default>'}")
        log.info(f"  provider.create_bucket_if_missing: {self.create_bucket_if_missing}")
        log.info(f"  provider.request_callback: {'set' if self.request_callback else 'none'}")


# =============================================================================
# Cloud Environment Options
# =============================================================================

@dataclass
class CloudEnvOptions:
    """
    Configuration of a cloud environment.

    The source bucket is where existing data is read from (for example when
    cloning from a snapshot); the destination is where new files go. They
    may be identical, distinct, or the destination may be unset.
    """
    src_bucket: BucketOptions = field(default_factory=BucketOptions)
    dest_bucket: BucketOptions = field(default_factory=BucketOptions)
    storage_provider: Optional[Any] = None
    run_purger: bool = False
    purger_periodicity_ms: int = 10 * 60 * 1000
    validate_filesize: bool = True
    credentials: CloudCredentials = field(default_factory=CloudCredentials)

    def test_initialize(self, bucket: str, object_path: str, region: str,
                        environ: Optional[Mapping[str, str]] = None,
                        user_suffix: Optional[Callable[[], str]] = None) -> None:
        """Point source and destination at the same test bucket"""
        self.src_bucket.test_initialize(bucket, object_path, region, environ, user_suffix)
        self.dest_bucket = self.src_bucket.copy()
        self.credentials.test_initialize(environ)

    def dump(self, log: Optional[logging.Logger] = None) -> None:
        log = log or logger
        for label, bucket in (("src", self.src_bucket), ("dest", self.dest_bucket)):
            log.info(f"  env.{label}_bucket.name: {bucket.name}")
            log.info(f"  env.{label}_bucket.object_path: {bucket.object_path}")
            log.info(f"  env.{label}_bucket.region: {bucket.region}")
        log.info(f"  env.run_purger: {self.run_purger}")
        log.info(f"  env.purger_periodicity_ms: {self.purger_periodicity_ms}")
        log.info(f"  env.validate_filesize: {self.validate_filesize}")
        log.info(f"  env.credentials: {self.credentials.masked()}")
        if self.storage_provider is not None:
            self.storage_provider.dump(log)
