"""Extraction orchestrator.

Top-level entry point: ``GeoExtractor.extract(bucket, key, file_kind)``.

Steps for one request:

1. Validate the request (and the bucket allow-list, if configured).
2. Allocate a scratch workspace.
3. Ask the blob store for the object size; refuse oversized uploads
   before any byte is downloaded.
4. Download the object into the workspace.
5. Parse it in the isolated worker under the processing deadline.
6. Validate the resulting GeoJSON against the memory limit.

The workspace is handed to the cleanup scheduler on every exit path,
so removal never delays the response and its failures never reach the
caller.  Domain errors propagate unchanged; anything else becomes
``InternalError("GeoJSON extraction failed: ...")``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from geo_parser.core.config import ExtractionConfig
from geo_parser.core.constants import SOURCE_FILE_STEM
from geo_parser.core.exceptions import (
    BadRequestError,
    EntityTooLargeError,
    GeoParserError,
    InternalError,
)
from geo_parser.core.workspace import CleanupScheduler, scratch_workspace
from geo_parser.models.request import ExtractionRequest, FileKind
from geo_parser.orchestrators.validation import validate_geojson
from geo_parser.parsers.worker import ParseWorker

if TYPE_CHECKING:
    from geo_parser.core.workspace import ScratchWorkspace
    from geo_parser.models.geojson import FeatureCollection
    from geo_parser.storage.base import BlobStore

logger = logging.getLogger("geo_parser.orchestrators.extract")

_SOURCE_SUFFIXES: dict[FileKind, str] = {
    FileKind.KML: ".kml",
    FileKind.SHAPEFILE: ".zip",
}


class GeoExtractor:
    """Turns an uploaded KML or zipped shapefile into validated GeoJSON.

    Args:
        blob_store: Where uploads are read from.
        config: Limits and deadlines (defaults when ``None``).
        worker: Parse worker (built from *config* when ``None``).
        scheduler: Background cleanup scheduler (a fresh one when ``None``).
    """

    def __init__(
        self,
        blob_store: BlobStore,
        config: ExtractionConfig | None = None,
        *,
        worker: ParseWorker | None = None,
        scheduler: CleanupScheduler | None = None,
    ) -> None:
        self._blob_store = blob_store
        self._config = config or ExtractionConfig()
        self._worker = worker or ParseWorker(
            self._config.processing_timeout_s,
            settings=self._config.parser_settings,
        )
        self._scheduler = scheduler or CleanupScheduler()

    @classmethod
    def from_env(cls) -> GeoExtractor:
        """Build an extractor from ``GEO_PARSER_*`` settings and Azure storage."""
        from geo_parser.storage.azure_blob import AzureBlobStore

        return cls(AzureBlobStore.from_env(), ExtractionConfig.from_env())

    @property
    def config(self) -> ExtractionConfig:
        return self._config

    @property
    def scheduler(self) -> CleanupScheduler:
        return self._scheduler

    async def extract(self, bucket: str, key: str, file_kind: FileKind | str) -> FeatureCollection:
        """Extract GeoJSON from the object at *bucket*/*key*.

        Raises:
            BadRequestError: Invalid request, unsupported kind or hostile input.
            NotFoundError: The object does not exist.
            ClientTimeoutError: Download or parse deadline exceeded.
            EntityTooLargeError: Upload or result exceeds its cap.
            InternalError: Anything else.
        """
        logger.info("Extraction started | bucket=%s | key=%s | kind=%s", bucket, key, file_kind)

        try:
            request = ExtractionRequest.build(bucket, key, file_kind)
            self._check_bucket(request)
            async with scratch_workspace(self._scheduler, self._config.scratch_root) as workspace:
                geojson = await self._run(request, workspace)
        except GeoParserError as exc:
            logger.error(
                "Extraction failed | bucket=%s | key=%s | category=%s | code=%s | error=%s",
                bucket,
                key,
                exc.category,
                exc.code,
                exc.message,
            )
            raise
        except Exception as exc:
            logger.error(
                "Extraction failed unexpectedly | bucket=%s | key=%s | error=%s",
                bucket,
                key,
                exc,
            )
            msg = f"GeoJSON extraction failed: {exc}"
            raise InternalError(msg, stage="extract") from exc

        logger.info(
            "Extraction completed | bucket=%s | key=%s | features=%d",
            bucket,
            key,
            len(geojson.get("features", [])),
        )
        return geojson

    async def wait_for_cleanup(self) -> None:
        """Wait until every scheduled workspace removal has finished."""
        await self._scheduler.drain()

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _check_bucket(self, request: ExtractionRequest) -> None:
        allowed = self._config.allowed_bucket
        if allowed and request.bucket != allowed:
            logger.warning(
                "Bucket not allowed | bucket=%s | allowed=%s",
                request.bucket,
                allowed,
            )
            msg = f"Invalid bucket: {request.bucket}"
            raise BadRequestError(msg, stage="request", code="BUCKET_NOT_ALLOWED")

    async def _run(
        self, request: ExtractionRequest, workspace: ScratchWorkspace
    ) -> FeatureCollection:
        metadata = await asyncio.to_thread(
            self._blob_store.head_object, request.bucket, request.key
        )
        if metadata.size > self._config.max_upload_bytes:
            msg = (
                f"File size {metadata.size} bytes exceeds maximum upload size "
                f"of {self._config.max_upload_bytes} bytes"
            )
            raise EntityTooLargeError(msg, stage="head", code="FILE_TOO_LARGE")

        source = workspace.file(SOURCE_FILE_STEM + _SOURCE_SUFFIXES[request.file_kind])
        await asyncio.to_thread(
            self._blob_store.download_object, request.bucket, request.key, source
        )

        geojson = await self._worker.run(source, request.file_kind)
        await asyncio.to_thread(validate_geojson, geojson, self._config.memory_limit_bytes)
        return geojson
