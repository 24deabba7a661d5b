"""Blob storage adapters.

- BlobStore: Abstract base class the orchestrator reads uploads through
- AzureBlobStore: Azure Blob Storage implementation
"""

from geo_parser.storage.base import BlobStore, ObjectMetadata

__all__ = ["BlobStore", "ObjectMetadata"]
