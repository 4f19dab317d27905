"""
Unit tests for snapshot validation and merge on a live connection.

Tests cover:
- Rejection of corrupt and foreign-schema images
- Rejection of rows the repositories could not read back
- WAL-format images
- replace / merge / skip-existing semantics
- All-or-nothing application
"""

import sqlite3

import pytest

from tagdb.models import MergeStrategy
from tagdb.storage.schema import SCHEMA_SQL
from tagdb.storage.snapshot import (
    SnapshotImage,
    SnapshotImportError,
    apply_images,
    export_database,
    read_image,
)
from tests.helpers import annotation_row, build_image, tag_row


def dump(conn):
    return {
        table: [tuple(r) for r in conn.execute(f"SELECT * FROM {table} ORDER BY 1")]
        for table in ("tags", "annotations", "tag_styles")
    }


class TestReadImage:
    """Tests for read_image."""

    def test_reads_rows_in_column_order(self):
        """Rows come back per table in schema column order."""
        data = build_image(tags=[tag_row("t1", "Faith")], annotations=[annotation_row("a1", "t1")])

        rows = read_image(data, 0)

        assert rows["tags"] == [tag_row("t1", "Faith")]
        assert rows["annotations"] == [annotation_row("a1", "t1")]
        assert rows["tag_styles"] == []

    def test_garbage_rejected(self):
        """Bytes that are not a database fail with their index."""
        with pytest.raises(SnapshotImportError) as exc_info:
            read_image(b"definitely not sqlite" * 100, 3)
        assert exc_info.value.index == 3

    def test_missing_table_rejected(self):
        """An image without the annotation tables fails."""
        data = build_image(schema="CREATE TABLE tags (id TEXT PRIMARY KEY);")

        with pytest.raises(SnapshotImportError, match="annotations|columns"):
            read_image(data, 0)

    def test_missing_column_rejected(self):
        """An image with an older tags table fails."""
        schema = SCHEMA_SQL.replace("priority INTEGER,", "")

        with pytest.raises(SnapshotImportError, match="priority"):
            read_image(build_image(schema=schema), 1)

    def test_wal_format_image_accepted(self):
        """Images flagged for WAL are read like any other."""
        data = bytearray(build_image(tags=[tag_row("t1", "Faith")]))
        data[18:20] = b"\x02\x02"

        rows = read_image(bytes(data), 0)

        assert len(rows["tags"]) == 1

    @pytest.mark.parametrize("token_ids", ["not json", '"gen.1.1.1"', "[1, 2]"])
    def test_unreadable_token_ids_rejected(self, token_ids):
        """Annotation rows whose token list cannot be read back fail."""
        data = build_image(
            tags=[tag_row("t1", "Faith")],
            annotations=[annotation_row("a1", "t1", token_ids=token_ids)],
        )

        with pytest.raises(SnapshotImportError, match="'a1'.*token_ids") as exc_info:
            read_image(data, 2)
        assert exc_info.value.index == 2

    def test_unknown_style_hint_rejected(self):
        """Style rows with a hint outside the allowed values fail."""
        style = ("t1", None, None, None, "zigzag", None, None, None, None, None)
        data = build_image(tags=[tag_row("t1", "Faith")], tag_styles=[style])

        with pytest.raises(SnapshotImportError, match="underline_style"):
            read_image(data, 0)


class TestApplyImages:
    """Tests for apply_images."""

    @pytest.fixture
    def conn(self):
        """Live connection configured like the storage worker."""
        conn = sqlite3.connect(":memory:", isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.executescript(SCHEMA_SQL)
        yield conn
        conn.close()

    def seed(self, conn, tags=(), annotations=()):
        for row in tags:
            conn.execute(f"INSERT INTO tags VALUES ({', '.join('?' * len(row))})", row)
        for row in annotations:
            conn.execute(f"INSERT INTO annotations VALUES ({', '.join('?' * len(row))})", row)

    def test_skip_existing_keeps_local_rows(self, conn):
        """Only ids absent locally are inserted."""
        self.seed(conn, tags=[tag_row("t1", "Local")])
        data = build_image(tags=[tag_row("t1", "Foreign"), tag_row("t2", "New")])

        apply_images(conn, [SnapshotImage(data, MergeStrategy.SKIP_EXISTING)])

        names = {r["id"]: r["name"] for r in conn.execute("SELECT id, name FROM tags")}
        assert names == {"t1": "Local", "t2": "New"}

    def test_skip_existing_is_idempotent(self, conn):
        """Importing the local export changes nothing."""
        self.seed(conn, tags=[tag_row("t1", "Faith")], annotations=[annotation_row("a1", "t1")])
        before = dump(conn)

        summary = apply_images(
            conn, [SnapshotImage(export_database(conn), MergeStrategy.SKIP_EXISTING)]
        )

        assert dump(conn) == before
        assert summary["changes"] == 0
        assert summary["tags"] == 1
        assert summary["annotations"] == 1

    def test_merge_higher_version_wins(self, conn):
        """Foreign annotation with a higher version replaces the local one."""
        self.seed(
            conn,
            tags=[tag_row("t1", "Faith")],
            annotations=[annotation_row("a1", "t1", note="local", version=1)],
        )
        data = build_image(
            tags=[tag_row("t1", "Faith")],
            annotations=[annotation_row("a1", "t1", note="foreign", version=5)],
        )

        apply_images(conn, [SnapshotImage(data, MergeStrategy.MERGE)])

        row = conn.execute("SELECT note, version FROM annotations WHERE id = 'a1'").fetchone()
        assert (row["note"], row["version"]) == ("foreign", 5)

    @pytest.mark.parametrize("foreign_version", [1, 5])
    def test_merge_lower_or_equal_version_keeps_local(self, conn, foreign_version):
        """Local annotation survives unless the foreign version is higher."""
        self.seed(
            conn,
            tags=[tag_row("t1", "Faith")],
            annotations=[annotation_row("a1", "t1", note="local", version=5)],
        )
        data = build_image(
            tags=[tag_row("t1", "Faith")],
            annotations=[annotation_row("a1", "t1", note="foreign", version=foreign_version)],
        )

        apply_images(conn, [SnapshotImage(data, MergeStrategy.MERGE)])

        row = conn.execute("SELECT note, version FROM annotations WHERE id = 'a1'").fetchone()
        assert (row["note"], row["version"]) == ("local", 5)

    def test_merge_overwrites_tag_without_cascade(self, conn):
        """Overwriting a tag keeps its local annotations."""
        self.seed(
            conn,
            tags=[tag_row("t1", "Faith")],
            annotations=[annotation_row("a1", "t1")],
        )
        data = build_image(tags=[tag_row("t1", "Faith (renamed)", color="#ff0000")])

        apply_images(conn, [SnapshotImage(data, MergeStrategy.MERGE)])

        tag = conn.execute("SELECT name, color FROM tags WHERE id = 't1'").fetchone()
        assert (tag["name"], tag["color"]) == ("Faith (renamed)", "#ff0000")
        assert conn.execute("SELECT COUNT(*) FROM annotations").fetchone()[0] == 1

    def test_replace_clears_local_rows(self, conn):
        """Replace leaves exactly the foreign rows."""
        self.seed(conn, tags=[tag_row("t1", "Local")], annotations=[annotation_row("a1", "t1")])
        conn.execute("INSERT INTO tag_styles (tag_id, opacity) VALUES ('t1', 0.5)")
        data = build_image(tags=[tag_row("t2", "Foreign")])

        apply_images(conn, [SnapshotImage(data, MergeStrategy.REPLACE)])

        assert dump(conn) == {"tags": [tag_row("t2", "Foreign")], "annotations": [], "tag_styles": []}

    def test_failing_image_rolls_back_everything(self, conn):
        """A bad third image leaves the live database untouched."""
        self.seed(conn, tags=[tag_row("t1", "Local")])
        before = dump(conn)

        good = build_image(tags=[tag_row("t2", "Good")])
        also_good = build_image(tags=[tag_row("t3", "Also good")])
        orphan = build_image(annotations=[annotation_row("a9", "missing-tag")])

        with pytest.raises(SnapshotImportError) as exc_info:
            apply_images(
                conn,
                [
                    SnapshotImage(good, MergeStrategy.REPLACE),
                    SnapshotImage(also_good, MergeStrategy.MERGE),
                    SnapshotImage(orphan, MergeStrategy.MERGE),
                ],
            )

        assert exc_info.value.index == 2
        assert dump(conn) == before
        assert not conn.in_transaction

    def test_corrupt_image_rejected_before_writing(self, conn):
        """Validation happens before the first write."""
        self.seed(conn, tags=[tag_row("t1", "Local")])
        before = dump(conn)

        with pytest.raises(SnapshotImportError) as exc_info:
            apply_images(
                conn,
                [
                    SnapshotImage(build_image(), MergeStrategy.REPLACE),
                    SnapshotImage(b"\x00" * 512, MergeStrategy.MERGE),
                ],
            )

        assert exc_info.value.index == 1
        assert dump(conn) == before

    def test_unreadable_row_rejected_before_writing(self, conn):
        """An image with a malformed row leaves the live database untouched."""
        self.seed(conn, tags=[tag_row("t1", "Local")], annotations=[annotation_row("a1", "t1")])
        before = dump(conn)

        bad = build_image(
            tags=[tag_row("t2", "Foreign")],
            annotations=[annotation_row("a2", "t2", token_ids="gen.1.1.1")],
        )

        with pytest.raises(SnapshotImportError) as exc_info:
            apply_images(
                conn,
                [
                    SnapshotImage(build_image(tags=[tag_row("t3", "Good")]), MergeStrategy.REPLACE),
                    SnapshotImage(bad, MergeStrategy.MERGE),
                ],
            )

        assert exc_info.value.index == 1
        assert dump(conn) == before
        found = conn.execute(
            "SELECT a.id FROM annotations a, json_each(a.token_ids) t WHERE t.value = ?",
            ("gen.1.1.1",),
        ).fetchall()
        assert [r[0] for r in found] == ["a1"]
