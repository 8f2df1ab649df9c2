from __future__ import annotations

from typing import Any, Sequence

from ..db import tables
from ..db.dynamodb.table import DynamoTable, Item
from .common import scan_collection
from .session_logs_repo import session_logs_between


def _table() -> DynamoTable:
    return tables.get_tables().locations


async def get_location(location_id: str) -> Item | None:
    return await _table().get(location_id)


async def get_location_by_token(token: str) -> Item | None:
    return await _table().get_by_token(token)


async def list_locations(*, limit: int | None = None, cursor: Any = None) -> dict[str, Any]:
    return await scan_collection(_table(), limit=limit, cursor=cursor)


async def put_location(item: dict[str, Any]) -> Item:
    return await _table().put(item)


async def update_location(location_id: str, updates: dict[str, Any]) -> Item | None:
    return await _table().update(location_id, item=updates)


async def delete_location(location_id: str) -> dict[str, Any]:
    return await _table().delete(location_id)


async def list_location_access_points(
    location_id: str,
    *,
    limit: int | None = None,
    cursor: Any = None,
) -> dict[str, Any]:
    """Access points installed at a location (scan filtered on LocationID)."""
    return await scan_collection(
        tables.get_tables().access_points,
        limit=limit,
        cursor=cursor,
        filter_expression="#LocationID = :locationID",
        names={"#LocationID": "LocationID"},
        values={":locationID": location_id},
    )


async def list_location_session_logs(
    location_id: str,
    *,
    years: Sequence[int],
    start: float | None = None,
    end: float | None = None,
    cursors: Sequence[str | None] | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    return await session_logs_between(
        years=years,
        start=start,
        end=end,
        name="LocationID",
        value=location_id,
        cursors=cursors,
        limit=limit,
    )
