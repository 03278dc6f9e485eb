"""
Storage Providers Package

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/providers/__init__.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Package Initialization

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Provider abstraction, file handles and the
                                S3, GCS and Azure implementations
-------------------------------------------------------------------------------
===============================================================================
"""

# Core abstraction
from .base import (
    PROVIDER_OPTIONS,
    CloudObjectInformation,
    CloudRequestEvent,
    CloudRequestOpType,
    CloudStorageProvider,
)
from .files import (
    CloudStorageReadableFile,
    CloudStorageWritableFile,
    FileOptions,
    RandomAccessFile,
    SequentialFile,
    WritableFile,
)
from .factory import ProviderFactory, create_provider

# Vendors
from .s3 import BOTO3_AVAILABLE, S3StorageProvider
from .gcs import GCS_AVAILABLE, GCSOptions, GCSStorageProvider
from .azure_blob import AZURE_AVAILABLE, AzureBlobStorageProvider, AzureOptions

__all__ = [
    # Core
    "PROVIDER_OPTIONS",
    "CloudObjectInformation",
    "CloudRequestEvent",
    "CloudRequestOpType",
    "CloudStorageProvider",
    "ProviderFactory",
    "create_provider",
    # Handles
    "CloudStorageReadableFile",
    "CloudStorageWritableFile",
    "FileOptions",
    "RandomAccessFile",
    "SequentialFile",
    "WritableFile",
    # Vendors
    "BOTO3_AVAILABLE",
    "S3StorageProvider",
    "GCS_AVAILABLE",
    "GCSOptions",
    "GCSStorageProvider",
    "AZURE_AVAILABLE",
    "AzureBlobStorageProvider",
    "AzureOptions",
]
