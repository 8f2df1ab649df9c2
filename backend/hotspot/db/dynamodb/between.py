"""
Time-range queries over a table partitioned by year.

The table's time index uses a coarse partition attribute (`Year`) with the
`Timestamp` as sort key, so one query can only address one year. `between`
fans a single logical range out into one query per requested year, runs them
concurrently and merges the pages.

Merged items keep the order of the `years` list (each partition's page in index
order); putting them into global timestamp order is left to the caller.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Sequence

import anyio

from ...observability.logging import get_logger
from ...settings import settings
from .errors import DdbValidation
from .pagination import decode_cursors, encode_cursor
from .table import DynamoTable, Item, Page, QueryRequest

log = get_logger("hotspot.between")

_DAY_MS = 1000 * 60 * 60 * 24


def now_ms() -> int:
    return int(time.time() * 1000)


def default_window(*, now: int | None = None, days: int | None = None) -> tuple[int, int]:
    """[now - days, now] in epoch milliseconds."""
    end = now_ms() if now is None else int(now)
    window_days = settings.between_default_window_days if days is None else int(days)
    return end - window_days * _DAY_MS, end


@dataclass(frozen=True, slots=True)
class BetweenParams:
    years: Sequence[int]
    start: float | None = None
    end: float | None = None
    # Optional equality filter, both or neither.
    name: str | None = None
    value: Any = None
    # Cursor list from a previous BetweenResult, one entry per year.
    cursors: Sequence[str | None] | None = None
    # Per-partition page size.
    limit: int | None = None


@dataclass(slots=True)
class BetweenResult:
    items: list[Item]
    count: int
    cursors: list[str] = field(default_factory=list)

    @property
    def has_more(self) -> bool:
        none = encode_cursor(None)
        return any(c != none for c in self.cursors)

    def as_collection(self) -> dict[str, Any]:
        return {"List": self.items, "Count": self.count, "LastEvaluatedKey": list(self.cursors)}


def build_partition_request(
    year: int,
    *,
    start: Any,
    end: Any,
    index_name: str,
    partition_field: str = "Year",
    sort_field: str = "Timestamp",
    name: str | None = None,
    value: Any = None,
    start_key: dict[str, Any] | None = None,
    limit: int | None = None,
) -> QueryRequest:
    names: dict[str, str] = {"#Year": partition_field, "#Timestamp": sort_field}
    values: dict[str, Any] = {":year": year, ":start": start, ":end": end}
    filter_expression = None
    if name is not None:
        # Composed alongside the key condition; never replaces it.
        names["#Filter"] = name
        values[":filter"] = value
        filter_expression = "#Filter = :filter"

    return QueryRequest(
        key_condition="#Year = :year AND #Timestamp BETWEEN :start AND :end",
        filter_expression=filter_expression,
        names=names,
        values=values,
        index_name=index_name,
        start_key=start_key,
        limit=limit,
    )


def _first_error(group: BaseExceptionGroup) -> BaseException:
    fallback: BaseException | None = None
    for exc in group.exceptions:
        if isinstance(exc, BaseExceptionGroup):
            exc = _first_error(exc)
        if isinstance(exc, Exception):
            return exc
        fallback = fallback or exc
    return fallback or group


def _validate(params: BetweenParams) -> None:
    years = list(params.years or [])
    if not years:
        raise DdbValidation(message="At least one year is required", operation="Between")
    if len(set(years)) != len(years):
        raise DdbValidation(message="Years must not repeat", operation="Between")
    if (params.name is None) != (params.value is None):
        raise DdbValidation(message="Filter name and value must be given together", operation="Between")


async def between(
    table: DynamoTable,
    params: BetweenParams,
    *,
    index_name: str,
    partition_field: str = "Year",
    sort_field: str = "Timestamp",
    now: int | None = None,
) -> BetweenResult:
    """Query every requested year concurrently and merge the pages.

    All-or-nothing: if any partition query fails the whole call raises that
    error and no merged result is produced.
    """
    _validate(params)
    years = list(params.years)

    default_start, default_end = default_window(now=now)
    start = default_start if params.start is None else params.start
    end = default_end if params.end is None else params.end
    if start > end:
        raise DdbValidation(message="Range start must not be after its end", operation="Between")

    positions = decode_cursors(params.cursors, size=len(years))

    requests: list[QueryRequest | None] = []
    for i, year in enumerate(years):
        if positions is not None and positions[i] is None:
            # Partition already exhausted by a previous page.
            requests.append(None)
            continue
        requests.append(
            build_partition_request(
                year,
                start=start,
                end=end,
                index_name=index_name,
                partition_field=partition_field,
                sort_field=sort_field,
                name=params.name,
                value=params.value,
                start_key=positions[i] if positions is not None else None,
                limit=params.limit,
            )
        )

    pages: list[Page | None] = [None] * len(years)

    async def _run_partition(i: int, request: QueryRequest) -> None:
        pages[i] = await table.query(request)

    try:
        async with anyio.create_task_group() as tg:
            for i, request in enumerate(requests):
                if request is not None:
                    tg.start_soon(_run_partition, i, request)
    except BaseExceptionGroup as eg:
        raise _first_error(eg)

    items: list[Item] = []
    cursors: list[str] = []
    for page in pages:
        if page is None:
            cursors.append(encode_cursor(None))
            continue
        items.extend(page.items)
        cursors.append(page.cursor)

    log.info(
        "between_query",
        table_name=table.table_name,
        index_name=index_name,
        years=years,
        start=start,
        end=end,
        filter_name=params.name,
        partitions_queried=sum(1 for r in requests if r is not None),
        count=len(items),
    )
    return BetweenResult(items=items, count=len(items), cursors=cursors)
