from __future__ import annotations

from typing import Any, Sequence

from ..db import tables
from ..db.dynamodb.table import DynamoTable, Item
from .common import scan_collection
from .session_logs_repo import session_logs_between


def _table() -> DynamoTable:
    return tables.get_tables().access_points


async def get_access_point(mac: str) -> Item | None:
    return await _table().get(mac)


async def get_access_point_by_token(token: str) -> Item | None:
    return await _table().get_by_token(token)


async def list_access_points(*, limit: int | None = None, cursor: Any = None) -> dict[str, Any]:
    return await scan_collection(_table(), limit=limit, cursor=cursor)


async def put_access_point(item: dict[str, Any]) -> Item:
    return await _table().put(item)


async def update_access_point(mac: str, updates: dict[str, Any]) -> Item | None:
    return await _table().update(mac, item=updates)


async def delete_access_point(mac: str) -> dict[str, Any]:
    return await _table().delete(mac)


async def get_access_point_location(ap: dict[str, Any]) -> Item | None:
    return await tables.get_tables().locations.get(ap.get("LocationID"))


async def list_access_point_session_logs(
    mac: str,
    *,
    years: Sequence[int],
    start: float | None = None,
    end: float | None = None,
    cursors: Sequence[str | None] | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Session logs recorded by this access point (NodeMac)."""
    return await session_logs_between(
        years=years,
        start=start,
        end=end,
        name="NodeMac",
        value=mac,
        cursors=cursors,
        limit=limit,
    )
