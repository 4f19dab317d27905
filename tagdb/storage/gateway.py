"""
Asyncio gateway to the storage worker.

StorageGateway turns the worker's message channel into ordinary
awaitable calls. Every call gets a correlation id; the matching
response resolves the caller's future on the event loop.

Invariants:
    - Correlation ids increase monotonically per gateway
    - Responses without a pending call are ignored
    - If the worker dies, every pending call fails with TransportError
    - No call is retried; a timed-out write may still have been applied
    - export_snapshot never interleaves with a write issued through
      this gateway

How to change safely:
    - Keep response handling on the event loop thread (call_soon_threadsafe)
    - Add new request types to StorageWorker first
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Sequence
from typing import Any, NamedTuple, Protocol

from ..errors import StorageError, TransportError
from .snapshot import SnapshotImage
from .worker import WorkerRequest, WorkerResponse

logger = logging.getLogger(__name__)


class Statement(NamedTuple):
    """A SQL statement with its bound parameters."""

    sql: str
    params: tuple[Any, ...] = ()


class WorkerChannel(Protocol):
    """The message channel the gateway multiplexes calls over.

    StorageWorker is the production implementation.
    """

    on_message: Any
    on_error: Any

    @property
    def is_alive(self) -> bool: ...

    def start(self) -> None: ...

    def post_message(self, request: WorkerRequest) -> None: ...

    def terminate(self, timeout: float | None = None) -> None: ...


class StorageGateway:
    """Typed request/response client over a WorkerChannel.

    Example:
        >>> gateway = StorageGateway(StorageWorker(db_path))
        >>> await gateway.start()
        >>> rows = await gateway.query("SELECT * FROM tags")
        >>> await gateway.close()
    """

    def __init__(
        self,
        worker: WorkerChannel,
        call_timeout: float | None = 30.0,
    ) -> None:
        """Initialize the gateway.

        Args:
            worker: Channel to the storage worker (not yet started)
            call_timeout: Seconds to wait for each response, None to wait forever
        """
        self.worker = worker
        self.call_timeout = call_timeout

        self._ids = itertools.count()
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._export_lock = asyncio.Lock()
        self._started = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def start(self) -> None:
        """Start the worker and create the schema."""
        if self._started:
            return

        self._loop = asyncio.get_running_loop()
        self.worker.on_message = self._on_worker_message
        self.worker.on_error = self._on_worker_error
        self.worker.start()
        self._started = True

        await self.initialize()

    async def close(self) -> None:
        """Stop the worker once queued requests are answered."""
        if not self._started:
            return

        await asyncio.to_thread(self.worker.terminate, self.call_timeout)
        self._reject_pending("Storage worker stopped")
        self._started = False

    async def __aenter__(self) -> StorageGateway:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Create tables and indexes if absent. Safe to call repeatedly."""
        await self._send("init", {})

    async def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a read-only statement and return its rows."""
        return await self._send("query", {"sql": sql, "params": tuple(params)})

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        """Run a mutating statement."""
        async with self._export_lock:
            await self._send("execute", {"sql": sql, "params": tuple(params)})

    async def execute_batch(self, statements: Sequence[Statement]) -> None:
        """Run several statements atomically."""
        async with self._export_lock:
            await self._send(
                "batch",
                {"statements": [(s.sql, tuple(s.params)) for s in statements]},
            )

    async def export_snapshot(self) -> bytes:
        """Serialize the whole database."""
        async with self._export_lock:
            return await self._send("export", {})

    async def import_snapshots(self, images: Sequence[SnapshotImage]) -> dict[str, int]:
        """Merge foreign images in one transaction.

        Raises:
            StorageError: With details["index"] naming the failing image
        """
        async with self._export_lock:
            return await self._send("import", {"images": list(images)})

    async def _send(self, type_: str, payload: dict[str, Any]) -> Any:
        if self._loop is None:
            raise TransportError("Storage gateway is not started")

        request_id = next(self._ids)
        future: asyncio.Future[Any] = self._loop.create_future()
        self._pending[request_id] = future

        try:
            self.worker.post_message(WorkerRequest(id=request_id, type=type_, payload=payload))
        except TransportError:
            self._pending.pop(request_id, None)
            raise

        try:
            return await asyncio.wait_for(future, self.call_timeout)
        except asyncio.TimeoutError:
            raise TransportError(
                f"No response to '{type_}' within {self.call_timeout}s",
                request_id=request_id,
            ) from None
        finally:
            self._pending.pop(request_id, None)

    def _on_worker_message(self, response: WorkerResponse) -> None:
        # Worker thread
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._resolve, response)

    def _on_worker_error(self, error: BaseException) -> None:
        # Worker thread
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._reject_pending, f"Storage worker failed: {error}")

    def _resolve(self, response: Any) -> None:
        if not isinstance(response, WorkerResponse):
            logger.debug("Ignoring malformed worker message", extra={"response": repr(response)})
            return

        future = self._pending.pop(response.id, None)
        if future is None or future.done():
            logger.debug("Ignoring unmatched worker response", extra={"request_id": response.id})
            return

        if response.error is not None:
            future.set_exception(StorageError(response.error, details=response.details))
        else:
            future.set_result(response.result)

    def _reject_pending(self, reason: str) -> None:
        if self._pending:
            logger.error(
                "Rejecting pending storage calls",
                extra={"pending": len(self._pending), "reason": reason},
            )
        pending, self._pending = self._pending, {}
        for request_id, future in pending.items():
            if not future.done():
                future.set_exception(TransportError(reason, request_id=request_id))
