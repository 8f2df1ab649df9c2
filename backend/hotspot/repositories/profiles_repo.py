from __future__ import annotations

from typing import Any, Sequence

from ..db import tables
from ..db.dynamodb.table import DynamoTable, Item
from .common import scan_collection
from .session_logs_repo import session_logs_between


def _table() -> DynamoTable:
    return tables.get_tables().profiles


async def get_profile(profile_id: str, provider: str) -> Item | None:
    return await _table().get(profile_id, provider)


async def get_profile_by_token(token: str) -> Item | None:
    return await _table().get_by_token(token)


async def list_profiles(*, limit: int | None = None, cursor: Any = None) -> dict[str, Any]:
    return await scan_collection(_table(), limit=limit, cursor=cursor)


async def put_profile(item: dict[str, Any]) -> Item:
    return await _table().put(item)


async def update_profile(profile_id: str, provider: str, updates: dict[str, Any]) -> Item | None:
    return await _table().update(profile_id, provider, item=updates)


async def delete_profile(profile_id: str, provider: str) -> dict[str, Any]:
    return await _table().delete(profile_id, provider)


async def list_profile_session_logs(
    profile_id: str,
    *,
    years: Sequence[int],
    start: float | None = None,
    end: float | None = None,
    cursors: Sequence[str | None] | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Session logs of this client (ClientID)."""
    return await session_logs_between(
        years=years,
        start=start,
        end=end,
        name="ClientID",
        value=profile_id,
        cursors=cursors,
        limit=limit,
    )
