"""Azure Blob Storage implementation of ``BlobStore``.

Bucket maps to container and key maps to blob name.  Azure SDK errors
are translated into the extraction taxonomy:

- ``ResourceNotFoundError``            → ``NotFoundError``
- ``ServiceRequestTimeoutError`` /
  ``ServiceResponseTimeoutError``      → ``ClientTimeoutError``
- anything else                        → ``InternalError``

Downloads stream chunk by chunk to disk, so an upload never has to fit
in memory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from geo_parser.core.exceptions import (
    ClientTimeoutError,
    GeoParserError,
    InternalError,
    NotFoundError,
)
from geo_parser.storage.base import BlobStore, ObjectMetadata

if TYPE_CHECKING:
    from azure.storage.blob import BlobServiceClient

logger = logging.getLogger("geo_parser.storage.azure_blob")

CONNECTION_STRING_ENV = "AzureWebJobsStorage"


class AzureBlobStore(BlobStore):
    """``BlobStore`` backed by an ``azure.storage.blob.BlobServiceClient``."""

    def __init__(self, service_client: BlobServiceClient) -> None:
        self._service = service_client

    @classmethod
    def from_env(cls) -> AzureBlobStore:
        """Create a store from the ``AzureWebJobsStorage`` connection string.

        Raises:
            InternalError: If the environment variable is not set.
        """
        from azure.storage.blob import BlobServiceClient

        connection_string = os.environ.get(CONNECTION_STRING_ENV, "")
        if not connection_string:
            msg = f"{CONNECTION_STRING_ENV} environment variable is not set"
            raise InternalError(msg, stage="storage", code="MISSING_CONNECTION_STRING")

        return cls(BlobServiceClient.from_connection_string(connection_string))

    def head_object(self, bucket: str, key: str) -> ObjectMetadata:
        blob_client = self._service.get_blob_client(container=bucket, blob=key)
        try:
            props = blob_client.get_blob_properties()
        except GeoParserError:
            raise
        except Exception as exc:
            raise _translate(exc, "Blob metadata retrieval failed", bucket, key) from exc

        content_settings = getattr(props, "content_settings", None)
        metadata = ObjectMetadata(
            size=int(props.size or 0),
            content_type=getattr(content_settings, "content_type", None) or "",
            etag=props.etag or "",
            last_modified=props.last_modified,
        )
        logger.debug(
            "Blob metadata | container=%s | blob=%s | size=%d",
            bucket,
            key,
            metadata.size,
        )
        return metadata

    def download_object(self, bucket: str, key: str, destination: Path) -> Path:
        destination = Path(destination)
        blob_client = self._service.get_blob_client(container=bucket, blob=key)
        written = 0
        try:
            downloader = blob_client.download_blob()
            with destination.open("wb") as sink:
                for chunk in downloader.chunks():
                    sink.write(chunk)
                    written += len(chunk)
        except GeoParserError:
            raise
        except Exception as exc:
            raise _translate(exc, "Blob download failed", bucket, key) from exc

        logger.info(
            "Downloaded blob | container=%s | blob=%s | bytes=%d",
            bucket,
            key,
            written,
        )
        return destination


def _translate(exc: Exception, prefix: str, bucket: str, key: str) -> GeoParserError:
    """Map an Azure SDK (or I/O) failure onto the extraction taxonomy."""
    from azure.core.exceptions import (
        ResourceNotFoundError,
        ServiceRequestTimeoutError,
        ServiceResponseTimeoutError,
    )

    if isinstance(exc, ResourceNotFoundError):
        logger.warning("Blob not found | container=%s | blob=%s", bucket, key)
        return NotFoundError("File not found in blob storage", stage="download")
    if isinstance(exc, ServiceRequestTimeoutError | ServiceResponseTimeoutError):
        logger.warning("Blob transfer timed out | container=%s | blob=%s", bucket, key)
        return ClientTimeoutError("Blob download timed out", stage="download")

    logger.error("Blob operation failed | container=%s | blob=%s | error=%s", bucket, key, exc)
    return InternalError(f"{prefix}: {exc}", stage="download")
