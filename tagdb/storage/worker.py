"""
Storage worker: the single owner of the SQLite database handle.

The worker runs on a dedicated thread and processes WorkerRequest
messages from a FIFO inbox, answering each one with a WorkerResponse
through the on_message callback. Nothing else in the process opens the
database file.

Request types:
    init    - create schema (idempotent)
    query   - read-only statement, returns rows as dicts
    execute - mutating statement, returns None
    batch   - several statements in one transaction
    export  - serialize the whole database to bytes
    import  - merge foreign snapshot images (one transaction)

Invariants:
    - Exactly one connection, created and used on the worker thread
    - Requests are applied in arrival order, one at a time
    - A failing request produces an error response; it never stops the loop
    - Writes are durable when the response is emitted (synchronous = FULL)

How to change safely:
    - New request types need a handler and a StorageGateway method
    - Never hand the connection to another thread
"""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import TransportError
from .schema import SCHEMA_SQL
from .snapshot import SnapshotImportError, apply_images, export_database

logger = logging.getLogger(__name__)

_STOP = object()

# Authorizer actions rejected while running a query request
_WRITE_ACTIONS = frozenset(
    {
        sqlite3.SQLITE_INSERT,
        sqlite3.SQLITE_UPDATE,
        sqlite3.SQLITE_DELETE,
        sqlite3.SQLITE_CREATE_TABLE,
        sqlite3.SQLITE_CREATE_INDEX,
        sqlite3.SQLITE_DROP_TABLE,
        sqlite3.SQLITE_DROP_INDEX,
        sqlite3.SQLITE_ALTER_TABLE,
        sqlite3.SQLITE_ATTACH,
        sqlite3.SQLITE_DETACH,
    }
)


@dataclass
class WorkerRequest:
    """A message sent to the worker.

    Attributes:
        id: Correlation id assigned by the gateway
        type: Request type (init, query, execute, batch, export, import)
        payload: Request arguments
    """

    id: int
    type: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkerResponse:
    """A message sent back by the worker.

    Attributes:
        id: Correlation id of the request being answered
        result: Request result when successful
        error: Error message when the request failed
        details: Extra error context (e.g. failing snapshot index)
    """

    id: int
    result: Any = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


def _read_only_authorizer(action: int, *args: Any) -> int:
    if action in _WRITE_ACTIONS:
        return sqlite3.SQLITE_DENY
    return sqlite3.SQLITE_OK


class StorageWorker:
    """Background thread owning the tag store database.

    Attributes:
        db_path: SQLite database file
        on_message: Called on the worker thread with every WorkerResponse
        on_error: Called on the worker thread if the worker dies

    Example:
        >>> worker = StorageWorker("/var/lib/tagdb/scripture-tags.db")
        >>> worker.on_message = print
        >>> worker.start()
        >>> worker.post_message(WorkerRequest(id=0, type="init"))
    """

    def __init__(
        self,
        db_path: str | Path,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -16000,
    ) -> None:
        """Initialize the worker.

        Args:
            db_path: SQLite database file (created if missing)
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages

        self.on_message: Callable[[WorkerResponse], None] | None = None
        self.on_error: Callable[[BaseException], None] | None = None

        self._inbox: queue.Queue[Any] = queue.Queue()
        self._thread = threading.Thread(target=self._run, name="tagdb-storage", daemon=True)
        self._handlers: dict[str, Callable[[sqlite3.Connection, dict[str, Any]], Any]] = {
            "init": self._handle_init,
            "query": self._handle_query,
            "execute": self._handle_execute,
            "batch": self._handle_batch,
            "export": self._handle_export,
            "import": self._handle_import,
        }

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread."""
        self._thread.start()
        logger.info("Storage worker started", extra={"db_path": str(self.db_path)})

    def post_message(self, request: WorkerRequest) -> None:
        """Enqueue a request.

        Raises:
            TransportError: If the worker thread is not running
        """
        if not self.is_alive:
            raise TransportError("Storage worker is not running", request_id=request.id)
        self._inbox.put(request)

    def terminate(self, timeout: float | None = None) -> None:
        """Stop the worker after the requests already queued.

        Blocks until the thread exits or the timeout elapses.
        """
        if self.is_alive:
            self._inbox.put(_STOP)
            self._thread.join(timeout)
        logger.info("Storage worker stopped", extra={"db_path": str(self.db_path)})

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
        conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
        conn.execute("PRAGMA journal_mode = DELETE")
        conn.execute("PRAGMA synchronous = FULL")
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _run(self) -> None:
        try:
            conn = self._connect()
        except Exception as e:
            logger.error(f"Storage worker failed to open database: {e}", exc_info=True)
            self._notify_error(e)
            return

        try:
            while True:
                request = self._inbox.get()
                if request is _STOP:
                    break
                self._emit(self._handle(conn, request))
        except BaseException as e:
            logger.error(f"Storage worker crashed: {e}", exc_info=True)
            self._notify_error(e)
        finally:
            conn.close()

    def _handle(self, conn: sqlite3.Connection, request: WorkerRequest) -> WorkerResponse:
        response = WorkerResponse(id=request.id)
        try:
            handler = self._handlers.get(request.type)
            if handler is None:
                raise ValueError(f"Unknown request type: {request.type}")
            response.result = handler(conn, request.payload)
        except SnapshotImportError as e:
            logger.warning(f"Snapshot import failed: {e}", extra={"index": e.index})
            response.error = str(e)
            response.details = {"index": e.index}
        except Exception as e:
            logger.warning(
                f"Storage request failed: {e}",
                extra={"request_id": request.id, "type": request.type},
            )
            response.error = str(e)
        return response

    def _emit(self, response: WorkerResponse) -> None:
        if self.on_message is None:
            logger.debug("Dropping response, no listener", extra={"request_id": response.id})
            return
        self.on_message(response)

    def _notify_error(self, error: BaseException) -> None:
        if self.on_error is not None:
            self.on_error(error)

    def _handle_init(self, conn: sqlite3.Connection, payload: dict[str, Any]) -> dict[str, Any]:
        conn.executescript(SCHEMA_SQL)
        return {"success": True}

    def _handle_query(
        self, conn: sqlite3.Connection, payload: dict[str, Any]
    ) -> list[dict[str, Any]]:
        conn.set_authorizer(_read_only_authorizer)
        try:
            cursor = conn.execute(payload["sql"], payload.get("params") or ())
            return [dict(row) for row in cursor.fetchall()]
        finally:
            conn.set_authorizer(None)

    def _handle_execute(self, conn: sqlite3.Connection, payload: dict[str, Any]) -> None:
        conn.execute(payload["sql"], payload.get("params") or ())

    def _handle_batch(self, conn: sqlite3.Connection, payload: dict[str, Any]) -> None:
        conn.execute("BEGIN IMMEDIATE")
        try:
            for sql, params in payload["statements"]:
                conn.execute(sql, params)
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise

    def _handle_export(self, conn: sqlite3.Connection, payload: dict[str, Any]) -> bytes:
        return export_database(conn)

    def _handle_import(self, conn: sqlite3.Connection, payload: dict[str, Any]) -> dict[str, int]:
        return apply_images(conn, payload["images"])
