"""BlobStore abstract base class.

The extraction orchestrator reads uploads exclusively through this
interface; it never knows which storage service sits behind it.

Lifecycle for one extraction:
    1. ``head_object(bucket, key)``: size check before any download.
    2. ``download_object(bucket, key, destination)``: bytes to local disk.

Implementations map their own failures onto the extraction taxonomy:
``NotFoundError`` for a missing object, ``ClientTimeoutError`` for a
transfer deadline, ``InternalError`` for anything else.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path


@dataclass(frozen=True, slots=True)
class ObjectMetadata:
    """Metadata reported by the store for one object.

    Attributes:
        size: Object size in bytes, as reported by the store.
        content_type: MIME type, if known.
        etag: Entity tag, if known.
        last_modified: Last modification time, if known.
    """

    size: int
    content_type: str = ""
    etag: str = ""
    last_modified: datetime | None = None


class BlobStore(abc.ABC):
    """Read-only access to uploaded objects."""

    @abc.abstractmethod
    def head_object(self, bucket: str, key: str) -> ObjectMetadata:
        """Return metadata for *key* in *bucket* without downloading it.

        Raises:
            NotFoundError: If the object does not exist.
            ClientTimeoutError: If the lookup times out.
            InternalError: On any other failure.
        """

    @abc.abstractmethod
    def download_object(self, bucket: str, key: str, destination: Path) -> Path:
        """Write the object's bytes to *destination* and return it.

        Raises:
            NotFoundError: If the object does not exist.
            ClientTimeoutError: If the transfer times out.
            InternalError: On any other failure.
        """
