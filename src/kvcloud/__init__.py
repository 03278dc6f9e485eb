"""
KVCloud - Cloud object storage backend for persistent key-value engines

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/__init__.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Package Initialization

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Main package initialization with version
                                and public API exports.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

__version__ = "1.0.0"
__author__ = "KVCloud Contributors"
__license__ = "MIT"

from .cloud_env import CloudEnv, CloudEnvState
from .errors import (
    CloudError,
    CloudIOError,
    EnvironmentStateError,
    InvalidConfigurationError,
    NotFoundError,
    NotSupportedError,
    PartialFailureError,
)
from .filename import path_to_name
from .options import (
    BucketOptions,
    CloudCredentials,
    CloudEnvOptions,
    CloudOptions,
    CloudStorageProviderOptions,
    get_name_from_environment,
    resolve_from_environment,
)
from .providers import (
    CloudObjectInformation,
    CloudRequestEvent,
    CloudRequestOpType,
    CloudStorageProvider,
    FileOptions,
    ProviderFactory,
    create_provider,
)
from .purger import CloudPurger

__all__ = [
    "CloudEnv",
    "CloudEnvState",
    "CloudPurger",
    # Options
    "BucketOptions",
    "CloudCredentials",
    "CloudEnvOptions",
    "CloudOptions",
    "CloudStorageProviderOptions",
    "FileOptions",
    "get_name_from_environment",
    "resolve_from_environment",
    "path_to_name",
    # Providers
    "CloudObjectInformation",
    "CloudRequestEvent",
    "CloudRequestOpType",
    "CloudStorageProvider",
    "ProviderFactory",
    "create_provider",
    # Errors
    "CloudError",
    "CloudIOError",
    "EnvironmentStateError",
    "InvalidConfigurationError",
    "NotFoundError",
    "NotSupportedError",
    "PartialFailureError",
    "__version__",
]
