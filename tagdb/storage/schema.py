"""
SQLite schema for the tag store.

Scripture text is not stored here; the database only holds
user-generated tags, annotations and tag styles.

Table schema:
    tags:
        - id TEXT PRIMARY KEY (UUID)
        - name TEXT
        - description, category, color, icon TEXT
        - priority INTEGER
        - created_at INTEGER (Unix ms)
        - user_id TEXT

    annotations:
        - id TEXT PRIMARY KEY (UUID)
        - tag_id TEXT -> tags.id ON DELETE CASCADE
        - token_ids TEXT (JSON array)
        - user_id TEXT
        - note TEXT
        - created_at, last_modified INTEGER (Unix ms)
        - version INTEGER

    tag_styles:
        - tag_id TEXT PRIMARY KEY -> tags.id ON DELETE CASCADE
        - user_id TEXT (NULL = global style)
        - rendering hint columns

How to change safely:
    - Snapshots exchanged between peers carry this exact column set;
      adding columns breaks import on older peers
    - Keep CREATE statements idempotent (IF NOT EXISTS)
"""

from __future__ import annotations

TAG_COLUMNS = (
    "id",
    "name",
    "description",
    "category",
    "color",
    "icon",
    "priority",
    "created_at",
    "user_id",
)

ANNOTATION_COLUMNS = (
    "id",
    "tag_id",
    "token_ids",
    "user_id",
    "note",
    "created_at",
    "last_modified",
    "version",
)

TAG_STYLE_COLUMNS = (
    "tag_id",
    "user_id",
    "background_color",
    "text_color",
    "underline_style",
    "underline_color",
    "font_weight",
    "icon",
    "icon_position",
    "opacity",
)

# Table name -> (primary key, columns), in foreign key dependency order
TABLES: dict[str, tuple[str, tuple[str, ...]]] = {
    "tags": ("id", TAG_COLUMNS),
    "annotations": ("id", ANNOTATION_COLUMNS),
    "tag_styles": ("tag_id", TAG_STYLE_COLUMNS),
}

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS tags (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        category TEXT,
        color TEXT,
        icon TEXT,
        priority INTEGER,
        created_at INTEGER NOT NULL,
        user_id TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_tags_name ON tags(name);
    CREATE INDEX IF NOT EXISTS idx_tags_category ON tags(category);
    CREATE INDEX IF NOT EXISTS idx_tags_user_id ON tags(user_id);

    CREATE TABLE IF NOT EXISTS annotations (
        id TEXT PRIMARY KEY,
        tag_id TEXT NOT NULL,
        token_ids TEXT NOT NULL,
        user_id TEXT NOT NULL,
        note TEXT,
        created_at INTEGER NOT NULL,
        last_modified INTEGER NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_annotations_tag_id ON annotations(tag_id);
    CREATE INDEX IF NOT EXISTS idx_annotations_user_id ON annotations(user_id);
    CREATE INDEX IF NOT EXISTS idx_annotations_last_modified ON annotations(last_modified);

    CREATE TABLE IF NOT EXISTS tag_styles (
        tag_id TEXT PRIMARY KEY,
        user_id TEXT,
        background_color TEXT,
        text_color TEXT,
        underline_style TEXT,
        underline_color TEXT,
        font_weight TEXT,
        icon TEXT,
        icon_position TEXT,
        opacity REAL,
        FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_tag_styles_user_id ON tag_styles(user_id);
"""


def column_list(columns: tuple[str, ...]) -> str:
    """Render a column tuple for use in SELECT/INSERT."""
    return ", ".join(columns)


def placeholders(columns: tuple[str, ...]) -> str:
    return ", ".join("?" for _ in columns)
