from __future__ import annotations

import threading
from decimal import Decimal
from typing import Any

import anyio
import pytest
from botocore.exceptions import ClientError

from hotspot.db.dynamodb.between import BetweenParams, between, build_partition_request, now_ms
from hotspot.db.dynamodb.errors import DdbThrottled, DdbValidation, InvalidCursor
from hotspot.db.dynamodb.memory import MemoryTable
from hotspot.db.dynamodb.pagination import decode_cursor, encode_cursor
from hotspot.db.dynamodb.table import DynamoTable

INDEX = "Timestamp-Index"
DAY_MS = 24 * 60 * 60 * 1000


class QueryLog:
    """Table handle that records query kwargs; per-year pages via `pages`."""

    def __init__(self, pages: dict[int, dict[str, Any]] | None = None, fail_year: int | None = None):
        self.pages = pages or {}
        self.fail_year = fail_year
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def query(self, **kwargs):
        with self._lock:
            self.calls.append(kwargs)
        year = kwargs["ExpressionAttributeValues"][":year"]
        if year == self.fail_year:
            raise ClientError(
                {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
                "Query",
            )
        return self.pages.get(year, {"Items": []})


def _session_logs(handle) -> DynamoTable:
    return DynamoTable(table_name="session-logs", hash_key="ID", handle=handle)


def _memory_logs(items: list[dict[str, Any]]) -> DynamoTable:
    return _session_logs(
        MemoryTable("session-logs", hash_key="ID", indexes={INDEX: ("Year", "Timestamp")}, items=items)
    )


def test_partition_request_shape():
    req = build_partition_request(2021, start=1, end=2, index_name=INDEX)
    assert req.key_condition == "#Year = :year AND #Timestamp BETWEEN :start AND :end"
    assert req.index_name == INDEX
    assert req.names == {"#Year": "Year", "#Timestamp": "Timestamp"}
    assert req.values == {":year": 2021, ":start": 1, ":end": 2}
    assert req.filter_expression is None


def test_partition_request_adds_filter_alongside_key_condition():
    req = build_partition_request(2021, start=1, end=2, index_name=INDEX, name="ClientID", value="p1")
    assert req.filter_expression == "#Filter = :filter"
    assert req.names == {"#Year": "Year", "#Timestamp": "Timestamp", "#Filter": "ClientID"}
    assert req.values == {":year": 2021, ":start": 1, ":end": 2, ":filter": "p1"}


def test_one_query_per_year_and_counts_are_summed():
    handle = QueryLog(
        pages={
            2021: {"Items": [{"ID": "a"}, {"ID": "b"}]},
            2022: {"Items": [{"ID": "c"}], "LastEvaluatedKey": {"ID": "c", "Year": Decimal(2022), "Timestamp": Decimal(5)}},
        }
    )
    result = anyio.run(
        lambda: between(_session_logs(handle), BetweenParams(years=[2021, 2022], start=0, end=10), index_name=INDEX)
    )
    assert len(handle.calls) == 2
    assert sorted(c["ExpressionAttributeValues"][":year"] for c in handle.calls) == [2021, 2022]
    assert all(c["IndexName"] == INDEX for c in handle.calls)
    assert result.count == 3
    assert len(result.items) == result.count
    # Items follow the order of `years`.
    assert [it["ID"] for it in result.items] == ["a", "b", "c"]
    assert decode_cursor(result.cursors[0]) is None
    assert decode_cursor(result.cursors[1]) == {"ID": "c", "Year": 2022, "Timestamp": 5}
    assert result.has_more is True
    assert result.as_collection()["LastEvaluatedKey"] == result.cursors


def test_partition_queries_run_concurrently():
    barrier = threading.Barrier(2, timeout=5)

    class BarrierTable(QueryLog):
        def query(self, **kwargs):
            # Deadlocks (and breaks the barrier) if the queries run one after another.
            barrier.wait()
            return super().query(**kwargs)

    result = anyio.run(
        lambda: between(_session_logs(BarrierTable()), BetweenParams(years=[2021, 2022], start=0, end=1), index_name=INDEX)
    )
    assert result.count == 0
    assert not barrier.broken


def test_one_failing_partition_fails_the_whole_call():
    handle = QueryLog(pages={2021: {"Items": [{"ID": "a"}]}}, fail_year=2022)
    with pytest.raises(DdbThrottled) as exc:
        anyio.run(
            lambda: between(_session_logs(handle), BetweenParams(years=[2021, 2022], start=0, end=1), index_name=INDEX)
        )
    assert exc.value.retryable is True
    assert exc.value.operation == "Query"


def test_window_defaults_to_last_seven_days():
    handle = QueryLog()
    before = now_ms()
    anyio.run(lambda: between(_session_logs(handle), BetweenParams(years=[2023]), index_name=INDEX))
    after = now_ms()
    values = handle.calls[0]["ExpressionAttributeValues"]
    assert before <= values[":end"] <= after
    assert values[":end"] - values[":start"] == 7 * DAY_MS


def test_start_and_end_default_independently():
    handle = QueryLog()
    anyio.run(
        lambda: between(_session_logs(handle), BetweenParams(years=[2023], start=5), index_name=INDEX, now=100 * DAY_MS)
    )
    values = handle.calls[0]["ExpressionAttributeValues"]
    assert values[":start"] == 5
    assert values[":end"] == 100 * DAY_MS


@pytest.mark.parametrize(
    "params",
    [
        BetweenParams(years=[]),
        BetweenParams(years=[2021, 2021]),
        BetweenParams(years=[2021], name="ClientID"),
        BetweenParams(years=[2021], value="p1"),
        BetweenParams(years=[2021], start=10, end=1),
    ],
)
def test_invalid_parameters_are_rejected_before_querying(params):
    handle = QueryLog()
    with pytest.raises(DdbValidation):
        anyio.run(lambda: between(_session_logs(handle), params, index_name=INDEX))
    assert handle.calls == []


def test_cursor_list_must_match_years():
    handle = QueryLog()
    params = BetweenParams(years=[2021, 2022], start=0, end=1, cursors=[encode_cursor(None)])
    with pytest.raises(InvalidCursor):
        anyio.run(lambda: between(_session_logs(handle), params, index_name=INDEX))


def test_filter_and_range_against_memory_table():
    logs = [
        {"ID": "l1", "Year": 2021, "Timestamp": 100, "ClientID": "p1"},
        {"ID": "l2", "Year": 2021, "Timestamp": 200, "ClientID": "p2"},
        {"ID": "l3", "Year": 2021, "Timestamp": 900, "ClientID": "p1"},
        {"ID": "l4", "Year": 2022, "Timestamp": 150, "ClientID": "p1"},
        {"ID": "l5", "Year": 2023, "Timestamp": 150, "ClientID": "p1"},
    ]
    t = _memory_logs(logs)
    result = anyio.run(
        lambda: between(
            t,
            BetweenParams(years=[2022, 2021], start=100, end=500, name="ClientID", value="p1"),
            index_name=INDEX,
        )
    )
    assert [it["ID"] for it in result.items] == ["l4", "l1"]
    assert result.count == 2
    assert result.has_more is False


def test_resuming_each_partition_from_its_cursor():
    logs = [{"ID": f"a{i}", "Year": 2021, "Timestamp": i} for i in range(5)]
    logs += [{"ID": f"b{i}", "Year": 2022, "Timestamp": i} for i in range(2)]
    t = _memory_logs(logs)

    async def _run():
        seen: list[str] = []
        params = BetweenParams(years=[2021, 2022], start=0, end=10, limit=2)
        pages = 0
        while True:
            result = await between(t, params, index_name=INDEX)
            pages += 1
            seen.extend(it["ID"] for it in result.items)
            if not result.has_more:
                return seen, pages
            params = BetweenParams(years=[2021, 2022], start=0, end=10, limit=2, cursors=result.cursors)

    seen, pages = anyio.run(_run)
    assert sorted(seen) == sorted(["a0", "a1", "a2", "a3", "a4", "b0", "b1"])
    assert len(seen) == len(set(seen))
    assert pages == 3
