"""
Provider Factory - Creates storage providers by vendor name

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/providers/factory.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Core Implementation

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Provider registry keyed by vendor name with
                                the usual aliases.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import logging
from typing import Dict, List, Optional, Type

from ..errors import NotSupportedError
from ..options import CloudStorageProviderOptions
from .azure_blob import AzureBlobStorageProvider
from .base import CloudStorageProvider
from .gcs import GCSStorageProvider
from .s3 import S3StorageProvider

logger = logging.getLogger(__name__)


class ProviderFactory:
    """
    Factory for creating storage providers.

    Maps vendor names to provider implementations. Vendor-specific keyword
    arguments (a pre-built client, GCSOptions, AzureOptions) are passed
    through to the provider constructor.
    """

    PROVIDER_TYPES: Dict[str, Type[CloudStorageProvider]] = {
        "s3": S3StorageProvider,
        "aws": S3StorageProvider,
        "aws_s3": S3StorageProvider,
        "gcs": GCSStorageProvider,
        "google_cloud_storage": GCSStorageProvider,
        "azure": AzureBlobStorageProvider,
        "azure_blob": AzureBlobStorageProvider,
    }

    @classmethod
    def create(cls, provider_name: str,
               options: Optional[CloudStorageProviderOptions] = None,
               **kwargs) -> CloudStorageProvider:
        """
        Create a provider for the given vendor.

        Args:
            provider_name: Vendor name (e.g., "s3"), case-insensitive
            options: Provider configuration

        Returns:
            Unprepared provider instance

        Raises:
            NotSupportedError: If the name is unknown or the vendor SDK is
                not installed
        """
        provider_class = cls.PROVIDER_TYPES.get((provider_name or "").lower())
        if provider_class is None:
            raise NotSupportedError(f"Unknown cloud provider: {provider_name}")

        provider = provider_class(options, **kwargs)
        logger.debug(f"Created provider {provider!r} for '{provider_name}'")
        return provider

    @classmethod
    def get_supported_types(cls) -> List[str]:
        """Get names whose provider SDK is installed"""
        return [name for name, provider_class in cls.PROVIDER_TYPES.items()
                if provider_class.available]

    @classmethod
    def register_provider(cls, provider_name: str,
                          provider_class: Type[CloudStorageProvider]) -> None:
        """
        Register a new provider type.

        Args:
            provider_name: Vendor name
            provider_class: Provider implementation class
        """
        cls.PROVIDER_TYPES[provider_name.lower()] = provider_class


def create_provider(provider_name: str,
                    options: Optional[CloudStorageProviderOptions] = None,
                    **kwargs) -> CloudStorageProvider:
    """Create a provider through ProviderFactory"""
    return ProviderFactory.create(provider_name, options, **kwargs)
