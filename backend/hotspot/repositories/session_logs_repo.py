from __future__ import annotations

from typing import Any, Sequence

from ..db import tables
from ..db.dynamodb.between import BetweenParams, between
from ..db.dynamodb.table import DynamoTable, Item
from .common import scan_collection


def _table() -> DynamoTable:
    return tables.get_tables().session_logs


async def get_session_log(log_id: str) -> Item | None:
    return await _table().get(log_id)


async def get_session_log_by_token(token: str) -> Item | None:
    """Fetch a session log addressed by an encoded key."""
    return await _table().get_by_token(token)


async def list_session_logs(*, limit: int | None = None, cursor: Any = None) -> dict[str, Any]:
    return await scan_collection(_table(), limit=limit, cursor=cursor)


async def put_session_log(item: dict[str, Any]) -> Item:
    return await _table().put(item)


async def delete_session_log(log_id: str) -> dict[str, Any]:
    return await _table().delete(log_id)


async def session_logs_between(
    *,
    years: Sequence[int],
    start: float | None = None,
    end: float | None = None,
    name: str | None = None,
    value: Any = None,
    cursors: Sequence[str | None] | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Session logs with Timestamp in [start, end] across `years`, optionally filtered on one field."""
    t = tables.get_tables()
    result = await between(
        t.session_logs,
        BetweenParams(
            years=years,
            start=start,
            end=end,
            name=name,
            value=value,
            cursors=cursors,
            limit=limit,
        ),
        index_name=t.session_logs_time_index,
    )
    return result.as_collection()


# --- related entities ---


async def get_session_log_client(log: dict[str, Any]) -> Item | None:
    return await tables.get_tables().profiles.get(log.get("ClientID"), log.get("Provider"))


async def get_session_log_node(log: dict[str, Any]) -> Item | None:
    return await tables.get_tables().access_points.get(log.get("NodeMac"))


async def get_session_log_location(log: dict[str, Any]) -> Item | None:
    return await tables.get_tables().locations.get(log.get("LocationID"))
