"""
Integration tests for the tagdb-sync CLI.
"""

import json
import tempfile
from pathlib import Path

import pytest

from tagdb.tools import sync_cli
from tests.helpers import annotation_row, build_image, tag_row


class TestSyncCli:
    """Tests for the export/import/stats commands."""

    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setattr(sync_cli, "setup_logging", lambda *args, **kwargs: None)

    @pytest.fixture
    def share_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    def test_import_files_then_stats(self, data_dir, share_dir, capsys):
        """Imported rows show up in the counts."""
        image = build_image(
            tags=[tag_row("t1", "Faith")],
            annotations=[annotation_row("a1", "t1"), annotation_row("a2", "t1")],
        )
        (share_dir / "alice.sqlite").write_bytes(image)

        sync_cli.main(
            ["--data-dir", data_dir, "import", str(share_dir / "alice.sqlite"), "--strategy", "merge"]
        )
        sync_cli.main(["--data-dir", data_dir, "stats"])

        out = capsys.readouterr().out
        assert "Import completed (merge)" in out
        assert "tags: 1" in out
        assert "annotations: 2" in out
        assert "tag_styles: 0" in out

    def test_export_then_import_directory(self, data_dir, share_dir, capsys):
        """An export can be shared through a manifest directory."""
        (share_dir / "seed.sqlite").write_bytes(build_image(tags=[tag_row("t1", "Faith")]))
        sync_cli.main(["--data-dir", data_dir, "import", str(share_dir / "seed.sqlite")])

        sync_cli.main(
            ["--data-dir", data_dir, "export", "--user-id", "alice", "--out", str(share_dir)]
        )
        assert (share_dir / "alice-annotations.sqlite").exists()

        (share_dir / "manifest.json").write_text(
            json.dumps({"files": ["alice-annotations.sqlite"]})
        )
        with tempfile.TemporaryDirectory() as other_dir:
            sync_cli.main(["--data-dir", other_dir, "import", "--dir", str(share_dir)])
            capsys.readouterr()
            sync_cli.main(["--data-dir", other_dir, "stats"])

            assert "tags: 1" in capsys.readouterr().out

    def test_failure_exits_with_code(self, data_dir, share_dir, capsys):
        """Sync errors exit with status 1 and the reason code."""
        with pytest.raises(SystemExit) as exc_info:
            sync_cli.main(["--data-dir", data_dir, "import", "--dir", str(share_dir)])

        assert exc_info.value.code == 1
        assert "[ManifestNotFound]" in capsys.readouterr().err

    def test_missing_file_exits_with_code(self, data_dir, share_dir, capsys):
        """An unreadable snapshot file is named in the error and exits 1."""
        (share_dir / "alice.sqlite").write_bytes(build_image(tags=[tag_row("t1", "Faith")]))

        with pytest.raises(SystemExit) as exc_info:
            sync_cli.main(
                [
                    "--data-dir",
                    data_dir,
                    "import",
                    str(share_dir / "alice.sqlite"),
                    str(share_dir / "missing.sqlite"),
                ]
            )

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "[FileLoadFailed]" in err
        assert "missing.sqlite" in err

        sync_cli.main(["--data-dir", data_dir, "stats"])
        assert "tags: 0" in capsys.readouterr().out
