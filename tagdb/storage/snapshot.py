"""
Whole-database snapshot export and merge for the storage worker.

A snapshot is the raw SQLite image of a tag store. Importing reads the
rows of each foreign image through a private in-memory connection and
writes them into the live database according to a MergeStrategy:

    replace:        clear tags/annotations/tag_styles, then insert
    merge:          insert new ids; tags and styles are overwritten by the
                    foreign row; annotations keep the higher version
                    (ties keep the local row)
    skip-existing:  insert new ids only

Invariants:
    - Every image is validated (integrity, tables, columns, row values)
      before the live database is touched
    - All images of one call are applied in a single transaction
    - Upserts use ON CONFLICT DO UPDATE, never INSERT OR REPLACE, so that
      overwriting a tag does not cascade-delete its annotations

These functions run on the worker thread only; they receive the
worker's connection and must never be called from the event loop.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from ..models import MergeStrategy
from .rows import ROW_MODELS
from .schema import TABLES, column_list, placeholders

logger = logging.getLogger(__name__)

# Offsets of the file format read/write version bytes in the SQLite header
_HEADER_VERSION_OFFSET = 18
_WAL_FORMAT = b"\x02\x02"
_LEGACY_FORMAT = b"\x01\x01"


class SnapshotImportError(Exception):
    """A snapshot image could not be read or applied.

    Attributes:
        index: Position of the failing image in the import call
    """

    def __init__(self, index: int, message: str) -> None:
        super().__init__(message)
        self.index = index


@dataclass
class SnapshotImage:
    """One foreign image to merge, with the strategy to merge it under."""

    data: bytes
    strategy: MergeStrategy


def export_database(conn: sqlite3.Connection) -> bytes:
    """Serialize the live database into a self-contained image."""
    return conn.serialize()


def _normalize_header(data: bytes) -> bytes:
    # Images written by a WAL-mode peer cannot be opened in memory as-is
    start = _HEADER_VERSION_OFFSET
    if data[start : start + 2] == _WAL_FORMAT:
        return data[:start] + _LEGACY_FORMAT + data[start + 2 :]
    return data


def _check_rows(
    table: str, columns: tuple[str, ...], rows: list[tuple[Any, ...]], index: int
) -> None:
    # Rows the repositories could not read back must not reach the live store
    model = ROW_MODELS[table]
    for row in rows:
        try:
            model.model_validate(dict(zip(columns, row)))
        except ValidationError as e:
            first = e.errors(include_url=False)[0]
            field = ".".join(str(part) for part in first["loc"])
            raise SnapshotImportError(
                index, f"Invalid row {row[0]!r} in '{table}': {field}: {first['msg']}"
            ) from e


def read_image(data: bytes, index: int) -> dict[str, list[tuple[Any, ...]]]:
    """Validate a foreign image and read its rows.

    Args:
        data: Raw SQLite image
        index: Position of the image in the import call (for errors)

    Returns:
        Table name -> rows in schema column order

    Raises:
        SnapshotImportError: If the image is corrupt or has a foreign schema
    """
    foreign = sqlite3.connect(":memory:")
    try:
        try:
            foreign.deserialize(_normalize_header(data))
            check = foreign.execute("PRAGMA integrity_check").fetchone()[0]
        except (sqlite3.Error, OverflowError) as e:
            raise SnapshotImportError(index, f"Not a SQLite database: {e}") from e

        if check != "ok":
            raise SnapshotImportError(index, f"Integrity check failed: {check}")

        rows: dict[str, list[tuple[Any, ...]]] = {}
        for table, (_, columns) in TABLES.items():
            present = {info[1] for info in foreign.execute(f"PRAGMA table_info({table})")}
            if not present:
                raise SnapshotImportError(index, f"Snapshot has no '{table}' table")
            missing = [c for c in columns if c not in present]
            if missing:
                raise SnapshotImportError(
                    index, f"Table '{table}' is missing columns: {', '.join(missing)}"
                )
            cursor = foreign.execute(f"SELECT {column_list(columns)} FROM {table}")
            rows[table] = cursor.fetchall()
            _check_rows(table, columns, rows[table], index)
        return rows
    finally:
        foreign.close()


def _upsert_sql(table: str, key: str, columns: tuple[str, ...], strategy: MergeStrategy) -> str:
    sql = (
        f"INSERT INTO {table} ({column_list(columns)}) VALUES ({placeholders(columns)}) "
        f"ON CONFLICT({key}) "
    )
    if strategy is MergeStrategy.SKIP_EXISTING:
        return sql + "DO NOTHING"

    assignments = ", ".join(f"{c} = excluded.{c}" for c in columns if c != key)
    sql += f"DO UPDATE SET {assignments}"
    if table == "annotations":
        sql += " WHERE excluded.version > annotations.version"
    return sql


def _count_overwritten_tags(conn: sqlite3.Connection, rows: list[tuple[Any, ...]]) -> int:
    """Count local tags that a merge will overwrite with different content."""
    _, columns = TABLES["tags"]
    overwritten = 0
    for row in rows:
        local = conn.execute(
            f"SELECT {column_list(columns)} FROM tags WHERE id = ?", (row[0],)
        ).fetchone()
        if local is not None and tuple(local) != tuple(row):
            overwritten += 1
    return overwritten


def _apply_rows(
    conn: sqlite3.Connection,
    rows: dict[str, list[tuple[Any, ...]]],
    strategy: MergeStrategy,
) -> None:
    if strategy is MergeStrategy.REPLACE:
        for table in reversed(list(TABLES)):
            conn.execute(f"DELETE FROM {table}")
    elif strategy is MergeStrategy.MERGE:
        overwritten = _count_overwritten_tags(conn, rows["tags"])
        if overwritten:
            # Tags carry no version; the foreign copy wins unconditionally
            logger.warning(
                "Merge overwrites local tags with foreign copies",
                extra={"overwritten_tags": overwritten},
            )

    for table, (key, columns) in TABLES.items():
        conn.executemany(_upsert_sql(table, key, columns, strategy), rows[table])


def apply_images(conn: sqlite3.Connection, images: list[SnapshotImage]) -> dict[str, int]:
    """Merge foreign images into the live database in one transaction.

    Args:
        conn: Worker connection (autocommit mode)
        images: Images in application order

    Returns:
        Foreign row counts per table plus total rows changed

    Raises:
        SnapshotImportError: If any image fails; nothing is applied
    """
    loaded = [read_image(image.data, index) for index, image in enumerate(images)]

    summary = {table: 0 for table in TABLES}
    changes_before = conn.total_changes

    conn.execute("BEGIN IMMEDIATE")
    try:
        for index, (image, rows) in enumerate(zip(images, loaded)):
            try:
                _apply_rows(conn, rows, image.strategy)
            except sqlite3.Error as e:
                raise SnapshotImportError(index, f"Failed to apply snapshot: {e}") from e
            for table, table_rows in rows.items():
                summary[table] += len(table_rows)
        conn.execute("COMMIT")
    except Exception:
        conn.execute("ROLLBACK")
        raise

    summary["changes"] = conn.total_changes - changes_before
    return summary
