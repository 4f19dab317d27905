"""
Snapshot image builders shared by the storage and sync tests.
"""

import sqlite3

from tagdb.storage.schema import SCHEMA_SQL


def build_image(tags=(), annotations=(), tag_styles=(), schema=SCHEMA_SQL) -> bytes:
    """Build a snapshot image from raw rows in schema column order.

    Foreign keys are not enforced, so orphan rows can be written.
    """
    conn = sqlite3.connect(":memory:")
    try:
        conn.executescript(schema)
        for table, rows in (("tags", tags), ("annotations", annotations), ("tag_styles", tag_styles)):
            for row in rows:
                conn.execute(
                    f"INSERT INTO {table} VALUES ({', '.join('?' for _ in row)})", row
                )
        conn.commit()
        return conn.serialize()
    finally:
        conn.close()


def tag_row(tag_id, name, **overrides):
    """A tags row with defaults for the optional columns."""
    row = {
        "id": tag_id,
        "name": name,
        "description": None,
        "category": None,
        "color": None,
        "icon": None,
        "priority": None,
        "created_at": 1_700_000_000_000,
        "user_id": "peer",
    }
    row.update(overrides)
    return tuple(row.values())


def annotation_row(annotation_id, tag_id, token_ids='["gen.1.1.1"]', **overrides):
    """An annotations row with defaults for the optional columns."""
    row = {
        "id": annotation_id,
        "tag_id": tag_id,
        "token_ids": token_ids,
        "user_id": "peer",
        "note": None,
        "created_at": 1_700_000_000_000,
        "last_modified": 1_700_000_000_000,
        "version": 1,
    }
    row.update(overrides)
    return tuple(row.values())
