"""
Shared helpers for repositories.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import StorageError
from ..storage import Statement
from ..storage.rows import ROW_MODELS
from ..storage.schema import column_list, placeholders

RowT = TypeVar("RowT", bound=BaseModel)


def validate_rows(model: type[RowT], rows: Iterable[dict[str, Any]]) -> list[RowT]:
    """Check raw rows against a row model.

    Raises:
        StorageError: If any row does not match the model
    """
    try:
        return [model.model_validate(row) for row in rows]
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise StorageError(
            f"Row does not match {model.__name__}: {', '.join(fields)}",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def upsert_statement(
    table: str,
    key: str,
    columns: tuple[str, ...],
    values: tuple[Any, ...],
) -> Statement:
    """Build an insert-or-update by primary key.

    The values are checked against the table's row model first, so a
    row that could not be read back is never written. ON CONFLICT DO
    UPDATE keeps the existing row, so ON DELETE CASCADE children survive
    (INSERT OR REPLACE would delete them).

    Raises:
        StorageError: If the values do not match the row model
    """
    validate_rows(ROW_MODELS[table], [dict(zip(columns, values))])

    assignments = ", ".join(f"{c} = excluded.{c}" for c in columns if c != key)
    sql = (
        f"INSERT INTO {table} ({column_list(columns)}) VALUES ({placeholders(columns)}) "
        f"ON CONFLICT({key}) DO UPDATE SET {assignments}"
    )
    return Statement(sql, values)
