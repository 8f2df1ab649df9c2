from __future__ import annotations

from typing import Any, Mapping, Sequence

from ..db.dynamodb.pagination import decode_cursor, first_cursor
from ..db.dynamodb.table import DynamoTable, ScanRequest


async def scan_collection(
    table: DynamoTable,
    *,
    limit: int | None = None,
    cursor: str | Sequence[str | None] | None = None,
    filter_expression: str | None = None,
    names: Mapping[str, str] | None = None,
    values: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """One scan page rendered as a collection: {List, Count, LastEvaluatedKey: [cursor]}.

    `cursor` is the token (or the one-element token list) from a previous page.
    """
    page = await table.scan(
        ScanRequest(
            filter_expression=filter_expression,
            names=names,
            values=values,
            start_key=decode_cursor(first_cursor(cursor)),
            limit=limit,
        )
    )
    return page.as_collection()
