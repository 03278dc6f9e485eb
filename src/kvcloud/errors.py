"""
Cloud Storage Errors - Failure taxonomy shared by providers and environments

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/errors.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Core Implementation

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Exception hierarchy separating caller-
                                recoverable, retryable and fatal failures.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

from typing import Optional


class CloudError(Exception):
    """
    Base class for every failure raised by kvcloud.

    Attributes:
        retryable: Whether the caller may retry the same operation
        bucket: Bucket involved in the failed operation, if any
        object_path: Object path involved in the failed operation, if any
    """

    retryable = False

    def __init__(self, message: str, bucket: Optional[str] = None,
                 object_path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.bucket = bucket
        self.object_path = object_path

    def __str__(self) -> str:
        if self.bucket and self.object_path:
            return f"{self.message} [{self.bucket}/{self.object_path}]"
        if self.bucket:
            return f"{self.message} [{self.bucket}]"
        return self.message


class NotFoundError(CloudError):
    """Bucket or object does not exist"""


class NotSupportedError(CloudError):
    """Provider is not registered or its SDK is not installed"""


class InvalidConfigurationError(CloudError):
    """Malformed bucket descriptor, missing credentials or access denied"""


class CloudIOError(CloudError):
    """Network or transport failure; the caller may retry"""

    retryable = True


class PartialFailureError(CloudError):
    """
    A multi-step operation stopped partway.

    The destination is left in its prior state or in the completed state;
    `completed` lists the steps that did finish.
    """

    def __init__(self, message: str, bucket: Optional[str] = None,
                 object_path: Optional[str] = None, completed=None):
        super().__init__(message, bucket, object_path)
        self.completed = list(completed or [])


class EnvironmentStateError(CloudError):
    """Operation invoked while the cloud environment is not running"""
