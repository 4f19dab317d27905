"""
Annotation repository - data access for the annotations table.

token_ids is stored as a JSON array in a TEXT column. Lookups by token
use json_each so that membership is exact: a query for "gen.1.1.10"
never matches an annotation holding only "gen.1.1.1".
"""

from __future__ import annotations

from ..models import Annotation
from ..storage import Statement, StorageGateway
from ..storage.rows import AnnotationRow, annotation_to_row
from ..storage.schema import ANNOTATION_COLUMNS, column_list
from .base import upsert_statement, validate_rows

_SELECT = f"SELECT {column_list(ANNOTATION_COLUMNS)} FROM annotations"


class AnnotationRepository:
    """Maps Annotation records to and from the annotations table."""

    def __init__(self, gateway: StorageGateway) -> None:
        self.gateway = gateway

    async def _select(self, where: str = "", params: tuple = ()) -> list[Annotation]:
        rows = await self.gateway.query(f"{_SELECT} {where}", params)
        return [row.to_annotation() for row in validate_rows(AnnotationRow, rows)]

    async def save(self, annotation: Annotation) -> None:
        """Insert or update an annotation by id."""
        statement = upsert_statement(
            "annotations", "id", ANNOTATION_COLUMNS, annotation_to_row(annotation)
        )
        await self.gateway.execute(statement.sql, statement.params)

    async def find_by_id(self, annotation_id: str) -> Annotation | None:
        annotations = await self._select("WHERE id = ?", (annotation_id,))
        return annotations[0] if annotations else None

    async def find_by_tag_id(self, tag_id: str) -> list[Annotation]:
        return await self._select("WHERE tag_id = ? ORDER BY last_modified DESC", (tag_id,))

    async def find_by_token_id(self, token_id: str) -> list[Annotation]:
        """Annotations whose token set contains token_id."""
        return await self._select(
            """
            WHERE EXISTS (
                SELECT 1 FROM json_each(annotations.token_ids)
                WHERE json_each.value = ?
            )
            ORDER BY last_modified DESC
            """,
            (token_id,),
        )

    async def get_all(self) -> list[Annotation]:
        """All annotations, most recently modified first."""
        return await self._select("ORDER BY last_modified DESC")

    async def delete(self, annotation_id: str) -> None:
        await self.gateway.execute("DELETE FROM annotations WHERE id = ?", (annotation_id,))

    async def delete_by_tag_id(self, tag_id: str) -> None:
        statement = self.delete_by_tag_id_statement(tag_id)
        await self.gateway.execute(statement.sql, statement.params)

    def delete_by_tag_id_statement(self, tag_id: str) -> Statement:
        return Statement("DELETE FROM annotations WHERE tag_id = ?", (tag_id,))
