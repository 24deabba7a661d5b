"""Isolated parse worker.

Runs one parser call in a child process so a hostile document (entity
expansion, deeply nested geometry, an extreme archive) can never stall
the event loop serving other requests.

The child sends exactly one message over a one-way pipe:

- ``{"geojson": <FeatureCollection>}`` on success
- ``{"error": <error payload>}`` on failure (see ``to_error_payload``)

Outcomes seen by the caller:

- message with ``geojson``  → returned
- message with ``error``    → re-raised with its original category
- deadline reached first    → child terminated, ``ClientTimeoutError``
- child exits silently      → ``WorkerError`` carrying the exit code
- awaiting task cancelled   → child terminated, ``CancelledError``

Blocking ``recv()`` calls run on the worker's own thread pool, never the
loop's default executor.  Stopping a child never needs a thread: the
signal is sent from the loop and the exit is polled with ``asyncio.sleep``,
so hung children cannot starve the code that would terminate them.  The
child is always reaped before ``run`` returns or raises.
"""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from geo_parser.core.config import ParserSettings
from geo_parser.core.constants import DEFAULT_PROCESSING_TIMEOUT_S
from geo_parser.core.exceptions import (
    ClientTimeoutError,
    WorkerError,
    from_error_payload,
    to_error_payload,
)
from geo_parser.models.request import FileKind
from geo_parser.parsers import run_parser

if TYPE_CHECKING:
    from collections.abc import Callable
    from concurrent.futures import Executor
    from multiprocessing.connection import Connection
    from multiprocessing.context import BaseContext
    from multiprocessing.process import BaseProcess
    from pathlib import Path

    from geo_parser.models.geojson import FeatureCollection

logger = logging.getLogger("geo_parser.parsers.worker")

#: Seconds to wait for a child to exit before escalating (exit → terminate → kill).
DEFAULT_KILL_GRACE_S = 2.0

#: Interval between ``is_alive()`` checks while waiting for a child to exit.
_EXIT_POLL_S = 0.02


def worker_main(
    conn: Connection,
    file_path: str,
    file_kind: str,
    settings: ParserSettings,
) -> None:
    """Child-process entry point: parse and send exactly one message."""
    try:
        geojson = run_parser(file_path, file_kind, settings)
        conn.send({"geojson": geojson})
    except Exception as exc:
        conn.send({"error": to_error_payload(exc)})
    finally:
        conn.close()


class ParseWorker:
    """Runs a parser in a fresh child process under a hard deadline.

    Args:
        timeout_s: Deadline for the whole parse.
        settings: Limits passed to the parser.
        context: ``multiprocessing`` context (``spawn`` by default).
        target: Child entry point; must be picklable by *context*.
        kill_grace_s: Grace period before each escalation step.
        executor: Pool for the blocking pipe reads (a private
            ``ThreadPoolExecutor`` when ``None``).
    """

    def __init__(
        self,
        timeout_s: float = DEFAULT_PROCESSING_TIMEOUT_S,
        *,
        settings: ParserSettings | None = None,
        context: BaseContext | None = None,
        target: Callable[..., None] = worker_main,
        kill_grace_s: float = DEFAULT_KILL_GRACE_S,
        executor: Executor | None = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.settings = settings or ParserSettings()
        self._context = context or multiprocessing.get_context("spawn")
        self._target = target
        self._kill_grace_s = kill_grace_s
        self._executor = executor or ThreadPoolExecutor(thread_name_prefix="parse-worker-recv")

    async def run(self, file_path: Path | str, file_kind: FileKind | str) -> FeatureCollection:
        """Parse *file_path* in a child process and return its GeoJSON.

        Raises:
            ClientTimeoutError: If no message arrives within ``timeout_s``.
            WorkerError: If the child exits without sending a message.
            GeoParserError: Whatever the parser raised, rebuilt from its payload.
        """
        kind = FileKind.parse(file_kind)
        receiver, sender = self._context.Pipe(duplex=False)
        process = self._context.Process(
            target=self._target,
            args=(sender, str(file_path), kind.value, self.settings),
            daemon=True,
        )
        process.start()
        # Only the child may write; dropping our copy lets recv() see EOF.
        sender.close()
        logger.info("Parse worker started | pid=%s | kind=%s", process.pid, kind.value)

        loop = asyncio.get_running_loop()
        receiving = loop.run_in_executor(self._executor, _receive, receiver)
        answered = False
        try:
            message = await asyncio.wait_for(receiving, timeout=self.timeout_s)
            answered = True
        except TimeoutError:
            logger.error(
                "Parse worker exceeded deadline | pid=%s | timeout=%ss",
                process.pid,
                self.timeout_s,
            )
            msg = f"Processing exceeded budget of {self.timeout_s:g}s"
            raise ClientTimeoutError(msg, stage="parse_worker") from None
        finally:
            # Timeout, cancellation or any other escape: signal the child
            # before the first await so it dies even if we are cancelled again.
            if not answered:
                process.terminate()
            await self._reap(process)

        return self._unpack(message, process)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _unpack(self, message: Any, process: BaseProcess) -> FeatureCollection:
        if message is None:
            msg = f"Worker stopped unexpectedly with code {process.exitcode}"
            logger.error("Parse worker exited without a result | exitcode=%s", process.exitcode)
            raise WorkerError(msg)

        if not isinstance(message, dict):
            msg = f"Worker sent an unexpected message of type {type(message).__name__}"
            raise WorkerError(msg)

        if "error" in message:
            error = from_error_payload(message["error"])
            logger.warning(
                "Parse worker reported an error | category=%s | code=%s | error=%s",
                error.category,
                error.code,
                error.message,
            )
            raise error

        logger.info("Parse worker completed | exitcode=%s", process.exitcode)
        return message.get("geojson")  # type: ignore[return-value]

    async def _reap(self, process: BaseProcess) -> None:
        """Wait for the child to exit, escalating to terminate and then kill."""
        if await self._exited(process):
            return
        process.terminate()
        if await self._exited(process):
            logger.info("Parse worker stopped | pid=%s | exitcode=%s", process.pid, process.exitcode)
            return
        logger.warning("Parse worker ignored terminate, killing | pid=%s", process.pid)
        process.kill()
        if not await self._exited(process):
            logger.error("Parse worker still alive after kill | pid=%s", process.pid)
            return
        logger.info("Parse worker stopped | pid=%s | exitcode=%s", process.pid, process.exitcode)

    async def _exited(self, process: BaseProcess) -> bool:
        """Poll ``is_alive()`` for up to the grace period without blocking the loop."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._kill_grace_s
        while process.is_alive():
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(_EXIT_POLL_S)
        # Already reaped by is_alive(); join(0) only drops the bookkeeping.
        process.join(0)
        return True


def _receive(receiver: Connection) -> Any:
    """Block for the child's single message; ``None`` if it exits first."""
    try:
        return receiver.recv()
    except EOFError:
        return None
    finally:
        receiver.close()
