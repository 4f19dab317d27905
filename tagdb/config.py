"""
Configuration for TagDB.

Uses pydantic-settings for environment variable loading. Every setting
can be overridden with a TAGDB_-prefixed variable, e.g.
TAGDB_DATA_DIR=/srv/tags.

Invariants:
    - All settings have sensible defaults for local use
    - The database file lives at data_dir / db_filename
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

from .models import MergeStrategy


class Settings(BaseSettings):
    """TagDB configuration loaded from environment."""

    # Storage
    data_dir: str = Field(default="./data", description="Directory for the SQLite database")
    db_filename: str = Field(default="scripture-tags.db", description="SQLite database file name")
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout")
    cache_size_pages: int = Field(default=-16000, description="SQLite cache size (negative = KB)")
    call_timeout_seconds: float | None = Field(
        default=30.0, description="Per-call storage timeout, unset to wait forever"
    )

    # Identity stamped on new tags and annotations
    user_id: str = Field(default="default", description="Owning user for new records")

    # Snapshot sync
    sync_base_url: str | None = Field(default=None, description="HTTP root of peer snapshots")
    sync_dir: str | None = Field(default=None, description="Local directory of peer snapshots")
    manifest_name: str = Field(default="manifest.json", description="Snapshot manifest file name")
    default_strategy: MergeStrategy = Field(
        default=MergeStrategy.MERGE, description="Strategy used when none is given"
    )
    http_timeout_seconds: float = Field(default=30.0, description="Snapshot download timeout")

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: Literal["json", "text"] = Field(default="text", description="Log output format")

    model_config = {"env_prefix": "TAGDB_"}

    @property
    def db_path(self) -> Path:
        """Full path of the SQLite database."""
        return Path(self.data_dir) / self.db_filename
