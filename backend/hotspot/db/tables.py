from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from ..settings import settings
from .dynamodb.table import DynamoTable


LOCATIONS = "locations"
ACCESS_POINTS = "aps"
PROFILES = "profiles"
SESSION_LOGS = "session-logs"


@dataclass(frozen=True, slots=True)
class Tables:
    locations: DynamoTable
    access_points: DynamoTable
    profiles: DynamoTable
    session_logs: DynamoTable
    # Time-range index on session_logs: Year (hash) + Timestamp (range).
    session_logs_time_index: str = "Timestamp-Index"


def build_tables(handle_factory: Callable[[str, str, str | None], Any] | None = None) -> Tables:
    """Wire the four entity tables.

    `handle_factory(table_name, hash_key, range_key)` supplies the backend handle for each table;
    by default the boto3 Table resource is used.
    """

    def _table(suffix: str, *, hash_key: str, range_key: str | None = None) -> DynamoTable:
        name = settings.table_name(suffix)
        handle = handle_factory(name, hash_key, range_key) if handle_factory else None
        return DynamoTable(table_name=name, hash_key=hash_key, range_key=range_key, handle=handle)

    return Tables(
        locations=_table(LOCATIONS, hash_key="ID"),
        access_points=_table(ACCESS_POINTS, hash_key="Mac"),
        profiles=_table(PROFILES, hash_key="ID", range_key="Provider"),
        session_logs=_table(SESSION_LOGS, hash_key="ID"),
        session_logs_time_index=settings.session_logs_time_index,
    )


@lru_cache(maxsize=1)
def get_tables() -> Tables:
    return build_tables()
