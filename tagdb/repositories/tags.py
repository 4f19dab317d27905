"""
Tag repository - data access for the tags table.
"""

from __future__ import annotations

from ..models import Tag
from ..storage import Statement, StorageGateway
from ..storage.rows import TagRow, tag_to_row
from ..storage.schema import TAG_COLUMNS, column_list
from .base import upsert_statement, validate_rows

_SELECT = f"SELECT {column_list(TAG_COLUMNS)} FROM tags"


class TagRepository:
    """Maps Tag records to and from the tags table."""

    def __init__(self, gateway: StorageGateway) -> None:
        self.gateway = gateway

    async def _select(self, where: str = "", params: tuple = ()) -> list[Tag]:
        rows = await self.gateway.query(f"{_SELECT} {where}", params)
        return [row.to_tag() for row in validate_rows(TagRow, rows)]

    async def save(self, tag: Tag) -> None:
        """Insert or update a tag by id."""
        statement = upsert_statement("tags", "id", TAG_COLUMNS, tag_to_row(tag))
        await self.gateway.execute(statement.sql, statement.params)

    async def find_by_id(self, tag_id: str) -> Tag | None:
        tags = await self._select("WHERE id = ?", (tag_id,))
        return tags[0] if tags else None

    async def find_by_name(self, name: str, exclude_id: str | None = None) -> Tag | None:
        """First tag with this name, ignoring exclude_id when given."""
        if exclude_id is None:
            tags = await self._select("WHERE name = ? LIMIT 1", (name,))
        else:
            tags = await self._select("WHERE name = ? AND id != ? LIMIT 1", (name, exclude_id))
        return tags[0] if tags else None

    async def find_by_category(self, category: str) -> list[Tag]:
        return await self._select("WHERE category = ? ORDER BY name", (category,))

    async def get_all(self) -> list[Tag]:
        return await self._select("ORDER BY name")

    async def delete(self, tag_id: str) -> None:
        statement = self.delete_statement(tag_id)
        await self.gateway.execute(statement.sql, statement.params)

    def delete_statement(self, tag_id: str) -> Statement:
        return Statement("DELETE FROM tags WHERE id = ?", (tag_id,))
