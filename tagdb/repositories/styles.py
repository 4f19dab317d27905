"""
Tag style repository - data access for the tag_styles table.
"""

from __future__ import annotations

from ..models import TagStyle
from ..storage import Statement, StorageGateway
from ..storage.rows import TagStyleRow, style_to_row
from ..storage.schema import TAG_STYLE_COLUMNS, column_list
from .base import upsert_statement, validate_rows

_SELECT = f"SELECT {column_list(TAG_STYLE_COLUMNS)} FROM tag_styles"


class TagStyleRepository:
    """Maps TagStyle records to and from the tag_styles table."""

    def __init__(self, gateway: StorageGateway) -> None:
        self.gateway = gateway

    async def _select(self, where: str = "", params: tuple = ()) -> list[TagStyle]:
        rows = await self.gateway.query(f"{_SELECT} {where}", params)
        return [row.to_style() for row in validate_rows(TagStyleRow, rows)]

    async def save(self, tag_style: TagStyle) -> None:
        statement = upsert_statement(
            "tag_styles", "tag_id", TAG_STYLE_COLUMNS, style_to_row(tag_style)
        )
        await self.gateway.execute(statement.sql, statement.params)

    async def find_by_tag_id(self, tag_id: str) -> TagStyle | None:
        styles = await self._select("WHERE tag_id = ?", (tag_id,))
        return styles[0] if styles else None

    async def get_all(self) -> list[TagStyle]:
        return await self._select()

    async def delete(self, tag_id: str) -> None:
        statement = self.delete_statement(tag_id)
        await self.gateway.execute(statement.sql, statement.params)

    async def delete_by_user_id(self, user_id: str) -> None:
        await self.gateway.execute("DELETE FROM tag_styles WHERE user_id = ?", (user_id,))

    def delete_statement(self, tag_id: str) -> Statement:
        return Statement("DELETE FROM tag_styles WHERE tag_id = ?", (tag_id,))
