from __future__ import annotations

import copy
import threading
from decimal import Decimal
from typing import Any, Iterable, Mapping

from .errors import DdbConflict, DdbValidation
from .expressions import ExpressionContext, compile_condition, compile_projection, compile_update


def _normalize(value: Any) -> Any:
    # Mirror boto3: numbers come back as Decimal, floats are rejected.
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        raise TypeError("Float types are not supported. Use Decimal types instead.")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return {_normalize(v) for v in value}
    return value


def _order_value(value: Any) -> tuple[int, Any]:
    if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
        return (0, Decimal(value))
    if isinstance(value, str):
        return (1, value)
    if isinstance(value, (bytes, bytearray)):
        return (2, bytes(value))
    return (3, repr(value))


class MemoryTable:
    """
    In-memory stand-in for a boto3 DynamoDB `Table` resource.

    Accepts the same keyword arguments and returns the same response shapes for
    get/put/update/delete/query/scan, so a `DynamoTable` cannot tell the two
    apart. Queries and scans return items in key order and paginate with
    `Limit` / `ExclusiveStartKey` / `LastEvaluatedKey` the way DynamoDB does
    (the limit counts evaluated items, before the filter).
    """

    def __init__(
        self,
        name: str,
        *,
        hash_key: str,
        range_key: str | None = None,
        indexes: Mapping[str, tuple[str, str | None]] | None = None,
        items: Iterable[Mapping[str, Any]] = (),
    ):
        self.name = str(name)
        self.hash_key = hash_key
        self.range_key = range_key
        self.indexes = dict(indexes or {})
        self._items: dict[tuple[Any, ...], dict[str, Any]] = {}
        # Guards read-check-write on _items; DynamoTable calls from worker threads.
        self._lock = threading.Lock()
        for item in items:
            self.put_item(Item=dict(item))

    @property
    def table_name(self) -> str:
        return self.name

    # --- keys ---

    def _key_fields(self) -> tuple[str, ...]:
        return (self.hash_key, self.range_key) if self.range_key else (self.hash_key,)

    def _key_tuple(self, key: Mapping[str, Any]) -> tuple[Any, ...]:
        fields = self._key_fields()
        if set(key) != set(fields) or any(key.get(f) in (None, "") for f in fields):
            raise DdbValidation(message="The provided key element does not match the schema", table_name=self.name)
        return tuple(_normalize(key[f]) for f in fields)

    def _item_key(self, item: Mapping[str, Any]) -> dict[str, Any]:
        return {f: item[f] for f in self._key_fields()}

    def _index_schema(self, index_name: str | None) -> tuple[str, str | None]:
        if not index_name:
            return (self.hash_key, self.range_key)
        if index_name not in self.indexes:
            raise DdbValidation(
                message=f"The table does not have the specified index: {index_name}",
                table_name=self.name,
            )
        return self.indexes[index_name]

    def _order(self, item: Mapping[str, Any], index_name: str | None) -> tuple[Any, ...]:
        table_order = tuple(_order_value(item.get(f)) for f in self._key_fields())
        if not index_name:
            return table_order
        ih, ir = self._index_schema(index_name)
        index_order = (_order_value(item.get(ih)),) + ((_order_value(item.get(ir)),) if ir else ())
        return index_order + table_order

    def _position(self, item: Mapping[str, Any], index_name: str | None) -> dict[str, Any]:
        pos = self._item_key(item)
        if index_name:
            ih, ir = self._index_schema(index_name)
            pos[ih] = item[ih]
            if ir:
                pos[ir] = item[ir]
        return copy.deepcopy(pos)

    # --- single-item operations ---

    def _check_condition(self, current: Mapping[str, Any] | None, condition: str | None, ctx: ExpressionContext) -> None:
        if not condition:
            return
        pred = compile_condition(condition, ctx)
        if not pred(current or {}):
            raise DdbConflict(message="The conditional request failed", table_name=self.name)

    def get_item(
        self,
        *,
        Key: Mapping[str, Any],
        ProjectionExpression: str | None = None,
        ExpressionAttributeNames: Mapping[str, str] | None = None,
        ConsistentRead: bool | None = None,
    ) -> dict[str, Any]:
        ctx = ExpressionContext(names=ExpressionAttributeNames or {})
        attrs = compile_projection(ProjectionExpression, ctx) if ProjectionExpression else None
        ctx.check_unused()
        k = self._key_tuple(Key)
        with self._lock:
            found = self._items.get(k)
        if found is None:
            return {}
        out = copy.deepcopy(found)
        if attrs is not None:
            out = {k: v for k, v in out.items() if k in attrs}
        return {"Item": out}

    def put_item(
        self,
        *,
        Item: Mapping[str, Any],
        ConditionExpression: str | None = None,
        ExpressionAttributeNames: Mapping[str, str] | None = None,
        ExpressionAttributeValues: Mapping[str, Any] | None = None,
        ReturnValues: str = "NONE",
    ) -> dict[str, Any]:
        item = _normalize(dict(Item))
        if any(item.get(f) in (None, "") for f in self._key_fields()):
            raise DdbValidation(
                message="One or more parameter values were invalid: Missing the key in the item",
                table_name=self.name,
            )
        k = self._key_tuple(self._item_key(item))
        ctx = ExpressionContext(names=ExpressionAttributeNames or {}, values=_normalize(ExpressionAttributeValues or {}))
        with self._lock:
            previous = self._items.get(k)
            self._check_condition(previous, ConditionExpression, ctx)
            ctx.check_unused()
            self._items[k] = item
        if ReturnValues == "ALL_OLD" and previous is not None:
            return {"Attributes": copy.deepcopy(previous)}
        return {}

    def update_item(
        self,
        *,
        Key: Mapping[str, Any],
        UpdateExpression: str,
        ExpressionAttributeNames: Mapping[str, str] | None = None,
        ExpressionAttributeValues: Mapping[str, Any] | None = None,
        ConditionExpression: str | None = None,
        ReturnValues: str = "NONE",
    ) -> dict[str, Any]:
        k = self._key_tuple(Key)
        ctx = ExpressionContext(names=ExpressionAttributeNames or {}, values=_normalize(ExpressionAttributeValues or {}))
        with self._lock:
            previous = self._items.get(k)
            self._check_condition(previous, ConditionExpression, ctx)
            plan = compile_update(UpdateExpression, ctx)
            ctx.check_unused()

            base = copy.deepcopy(previous) if previous is not None else _normalize(dict(Key))
            updated = plan.apply(base)
            for f in self._key_fields():
                if updated.get(f) != base.get(f):
                    raise DdbValidation(
                        message=f"Cannot update attribute {f}. This attribute is part of the key",
                        table_name=self.name,
                    )
            self._items[k] = updated

        if ReturnValues == "ALL_NEW":
            return {"Attributes": copy.deepcopy(updated)}
        if ReturnValues == "ALL_OLD" and previous is not None:
            return {"Attributes": copy.deepcopy(previous)}
        return {}

    def delete_item(
        self,
        *,
        Key: Mapping[str, Any],
        ConditionExpression: str | None = None,
        ExpressionAttributeNames: Mapping[str, str] | None = None,
        ExpressionAttributeValues: Mapping[str, Any] | None = None,
        ReturnValues: str = "NONE",
    ) -> dict[str, Any]:
        k = self._key_tuple(Key)
        ctx = ExpressionContext(names=ExpressionAttributeNames or {}, values=_normalize(ExpressionAttributeValues or {}))
        with self._lock:
            previous = self._items.get(k)
            self._check_condition(previous, ConditionExpression, ctx)
            ctx.check_unused()
            self._items.pop(k, None)
        if ReturnValues == "ALL_OLD" and previous is not None:
            return {"Attributes": copy.deepcopy(previous)}
        return {}

    # --- reads over many items ---

    def _read_page(
        self,
        *,
        candidates: list[dict[str, Any]],
        index_name: str | None,
        ctx: ExpressionContext,
        filter_expression: str | None,
        projection_expression: str | None,
        exclusive_start_key: Mapping[str, Any] | None,
        limit: int | None,
        forward: bool,
    ) -> dict[str, Any]:
        filter_pred = compile_condition(filter_expression, ctx) if filter_expression else None
        attrs = compile_projection(projection_expression, ctx) if projection_expression else None
        ctx.check_unused()

        ordered = sorted(candidates, key=lambda it: self._order(it, index_name), reverse=not forward)
        if exclusive_start_key:
            start = self._order(_normalize(dict(exclusive_start_key)), index_name)
            if forward:
                ordered = [it for it in ordered if self._order(it, index_name) > start]
            else:
                ordered = [it for it in ordered if self._order(it, index_name) < start]

        if limit is not None and int(limit) < 1:
            raise DdbValidation(message="Limit must be greater than or equal to 1", table_name=self.name)

        evaluated = ordered[: int(limit)] if limit else ordered
        more = len(evaluated) < len(ordered)

        items = [it for it in evaluated if filter_pred is None or filter_pred(it)]
        out_items = []
        for it in items:
            obj = copy.deepcopy(it)
            if attrs is not None:
                obj = {k: v for k, v in obj.items() if k in attrs}
            out_items.append(obj)

        resp: dict[str, Any] = {"Items": out_items, "Count": len(out_items), "ScannedCount": len(evaluated)}
        if more and evaluated:
            resp["LastEvaluatedKey"] = self._position(evaluated[-1], index_name)
        return resp

    def _candidates(self, index_name: str | None) -> list[dict[str, Any]]:
        ih, ir = self._index_schema(index_name)
        # Secondary indexes are sparse: items without the index keys are absent.
        with self._lock:
            snapshot = list(self._items.values())
        return [it for it in snapshot if ih in it and (ir is None or ir in it)]

    def query(
        self,
        *,
        KeyConditionExpression: str,
        IndexName: str | None = None,
        FilterExpression: str | None = None,
        ExpressionAttributeNames: Mapping[str, str] | None = None,
        ExpressionAttributeValues: Mapping[str, Any] | None = None,
        ProjectionExpression: str | None = None,
        ExclusiveStartKey: Mapping[str, Any] | None = None,
        Limit: int | None = None,
        ScanIndexForward: bool = True,
    ) -> dict[str, Any]:
        ctx = ExpressionContext(names=ExpressionAttributeNames or {}, values=_normalize(ExpressionAttributeValues or {}))
        key_pred = compile_condition(KeyConditionExpression, ctx)
        candidates = [it for it in self._candidates(IndexName) if key_pred(it)]
        return self._read_page(
            candidates=candidates,
            index_name=IndexName,
            ctx=ctx,
            filter_expression=FilterExpression,
            projection_expression=ProjectionExpression,
            exclusive_start_key=ExclusiveStartKey,
            limit=Limit,
            forward=bool(ScanIndexForward),
        )

    def scan(
        self,
        *,
        FilterExpression: str | None = None,
        IndexName: str | None = None,
        ExpressionAttributeNames: Mapping[str, str] | None = None,
        ExpressionAttributeValues: Mapping[str, Any] | None = None,
        ProjectionExpression: str | None = None,
        ExclusiveStartKey: Mapping[str, Any] | None = None,
        Limit: int | None = None,
    ) -> dict[str, Any]:
        ctx = ExpressionContext(names=ExpressionAttributeNames or {}, values=_normalize(ExpressionAttributeValues or {}))
        return self._read_page(
            candidates=self._candidates(IndexName),
            index_name=IndexName,
            ctx=ctx,
            filter_expression=FilterExpression,
            projection_expression=ProjectionExpression,
            exclusive_start_key=ExclusiveStartKey,
            limit=Limit,
            forward=True,
        )
