"""Per-request scratch workspace.

Each extraction owns exactly one uniquely named directory.  The
``scratch_workspace`` context manager creates it and, on every exit
path, schedules its removal on a worker thread so the caller's
response is never held up by disk cleanup.  Removal failures are
logged and discarded.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from geo_parser.core.constants import WORKSPACE_PREFIX
from geo_parser.core.exceptions import InternalError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger("geo_parser.core.workspace")


class ScratchWorkspace:
    """An exclusively-owned temporary directory for one extraction.

    ``cleanup()`` removes the directory at most once; later calls are
    no-ops.  It never raises.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._cleaned = False

    @classmethod
    def create(cls, root: str | Path | None = None) -> ScratchWorkspace:
        """Allocate a new workspace under *root* (system temp dir if empty).

        Raises:
            InternalError: If the directory cannot be created.
        """
        try:
            path = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=root or None))
        except OSError as exc:
            msg = f"Cannot allocate scratch workspace: {exc}"
            raise InternalError(msg, stage="workspace") from exc
        logger.debug("Created scratch workspace | path=%s", path)
        return cls(path)

    @property
    def cleaned(self) -> bool:
        """Whether ``cleanup()`` has already run."""
        return self._cleaned

    def file(self, name: str) -> Path:
        """Return a path for *name* inside the workspace."""
        return self.path / name

    def cleanup(self) -> None:
        """Recursively remove the workspace, logging (not raising) failures."""
        with self._lock:
            if self._cleaned:
                return
            self._cleaned = True

        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            logger.debug("Scratch workspace already gone | path=%s", self.path)
        except OSError as exc:
            logger.error(
                "Failed to clean up scratch workspace | path=%s | error=%s",
                self.path,
                exc,
            )
        else:
            logger.debug("Cleaned up scratch workspace | path=%s", self.path)


class CleanupScheduler:
    """Runs workspace cleanups in the background and keeps their tasks alive."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def schedule(self, workspace: ScratchWorkspace) -> None:
        """Start ``workspace.cleanup()`` on a thread without awaiting it."""
        task = asyncio.get_running_loop().create_task(asyncio.to_thread(workspace.cleanup))
        self._tasks.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Workspace cleanup task failed | error=%s", exc)

    @property
    def pending(self) -> int:
        """Number of cleanups still running."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled cleanup to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


@contextlib.asynccontextmanager
async def scratch_workspace(
    scheduler: CleanupScheduler,
    root: str | Path | None = None,
) -> AsyncIterator[ScratchWorkspace]:
    """Allocate a workspace and guarantee its background removal on exit.

    Allocation failure propagates as ``InternalError`` and schedules
    nothing, since nothing was created.
    """
    workspace = await asyncio.to_thread(ScratchWorkspace.create, root)
    try:
        yield workspace
    finally:
        scheduler.schedule(workspace)
