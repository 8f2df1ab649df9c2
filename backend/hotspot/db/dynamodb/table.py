from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import Any, Callable, Mapping, Sequence, TypeVar

import anyio

from .calls import ddb_call
from .errors import DdbInternal, DdbNotFound, DdbValidation, InvalidItem, InvalidKey
from .pagination import decode_cursor, encode_cursor


T = TypeVar("T")

Item = dict[str, Any]


def _missing(value: Any) -> bool:
    return value is None or value == ""


def _ddb_value(value: Any) -> Any:
    # boto3 rejects floats; epoch-millis and other numbers often arrive as floats.
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, Mapping):
        return {k: _ddb_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_ddb_value(v) for v in value]
    return value


@dataclass(frozen=True, slots=True)
class TableDescriptor:
    table_name: str
    hash_key: str
    range_key: str | None = None
    # Anything exposing the boto3 Table resource methods.
    handle: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class QueryRequest:
    """Key-condition query against the table or one of its indexes.

    `names` may only be omitted for primary-key queries, where `#HashKey` and
    `#RangeKey` resolve to the table's own key fields. Index queries must pass
    their names explicitly.
    """

    key_condition: str
    filter_expression: str | None = None
    names: Mapping[str, str] | None = None
    values: Mapping[str, Any] | None = None
    index_name: str | None = None
    attributes: Sequence[str] | None = None
    start_key: Mapping[str, Any] | None = None
    limit: int | None = None
    scan_index_forward: bool = True


@dataclass(frozen=True, slots=True)
class ScanRequest:
    filter_expression: str | None = None
    names: Mapping[str, str] | None = None
    values: Mapping[str, Any] | None = None
    index_name: str | None = None
    attributes: Sequence[str] | None = None
    start_key: Mapping[str, Any] | None = None
    limit: int | None = None


@dataclass(frozen=True, slots=True)
class UpdateRequest:
    """Explicit update, used verbatim (conditional writes, atomic counters)."""

    expression: str
    names: Mapping[str, str] | None = None
    values: Mapping[str, Any] | None = None
    condition_expression: str | None = None


@dataclass(slots=True)
class Page:
    items: list[Item]
    count: int
    last_evaluated_key: dict[str, Any] | None = None

    @property
    def has_more(self) -> bool:
        return bool(self.last_evaluated_key)

    @property
    def cursor(self) -> str:
        return encode_cursor(self.last_evaluated_key)

    def as_collection(self) -> dict[str, Any]:
        return {"List": self.items, "Count": self.count, "LastEvaluatedKey": [self.cursor]}


def build_update_request(item: Mapping[str, Any], *, exclude: Sequence[str] = ()) -> UpdateRequest:
    """Derive `SET #k1 = :v1, ...` touching exactly the fields of `item`.

    Names and values are always placeholders, so reserved words and odd field
    names are safe.
    """
    expr_parts: list[str] = []
    expr_names: dict[str, str] = {}
    expr_values: dict[str, Any] = {}

    i = 0
    for k, v in item.items():
        if k in exclude:
            continue
        i += 1
        nk = f"#k{i}"
        vk = f":v{i}"
        expr_names[nk] = k
        expr_values[vk] = v
        expr_parts.append(f"{nk} = {vk}")

    if not expr_parts:
        raise InvalidItem(message="Update item has no fields to set", operation="UpdateItem")

    return UpdateRequest(expression="SET " + ", ".join(expr_parts), names=expr_names, values=expr_values)


class DynamoTable:
    """Async accessor for one logical table.

    Holds no mutable state after construction; one instance can serve any
    number of concurrent calls. Backend calls run in a worker thread and are
    never retried here.
    """

    def __init__(
        self,
        *,
        table_name: str,
        hash_key: str,
        range_key: str | None = None,
        handle: Any = None,
    ):
        if not table_name:
            raise DdbInternal(message="Table name must be defined", operation="Config")
        if not hash_key:
            raise DdbInternal(message="Hash key must be defined", operation="Config", table_name=table_name)
        if handle is None:
            from .client import table_resource

            handle = table_resource(table_name)
        self.descriptor = TableDescriptor(
            table_name=str(table_name),
            hash_key=str(hash_key),
            range_key=str(range_key) if range_key else None,
            handle=handle,
        )

    @property
    def table_name(self) -> str:
        return self.descriptor.table_name

    @property
    def hash_key(self) -> str:
        return self.descriptor.hash_key

    @property
    def range_key(self) -> str | None:
        return self.descriptor.range_key

    @property
    def _table(self) -> Any:
        return self.descriptor.handle

    def __repr__(self) -> str:
        return f"DynamoTable({self.table_name!r}, hash_key={self.hash_key!r}, range_key={self.range_key!r})"

    # --- keys ---

    def build_key(self, hash_value: Any, range_value: Any = None, *, operation: str | None = None) -> dict[str, Any]:
        if _missing(hash_value):
            raise InvalidKey(message="Invalid hash key.", operation=operation, table_name=self.table_name)
        key: dict[str, Any] = {self.hash_key: hash_value}
        if self.range_key:
            if _missing(range_value):
                raise InvalidKey(message="Invalid range key.", operation=operation, table_name=self.table_name)
            key[self.range_key] = range_value
        return _ddb_value(key)

    def key_of(self, item: Mapping[str, Any]) -> dict[str, Any]:
        return self.build_key(
            item.get(self.hash_key),
            item.get(self.range_key) if self.range_key else None,
        )

    async def _run(self, operation: str, fn: Callable[[], T], *, key: dict[str, Any] | None = None) -> T:
        return await anyio.to_thread.run_sync(
            partial(ddb_call, operation, fn, table_name=self.table_name, key=key)
        )

    # --- basic operations ---

    async def get(self, hash_value: Any, range_value: Any = None) -> Item | None:
        key = self.build_key(hash_value, range_value, operation="GetItem")

        def _op():
            resp = self._table.get_item(Key=key)
            return resp.get("Item")

        return await self._run("GetItem", _op, key=key)

    async def get_required(self, hash_value: Any, range_value: Any = None, *, message: str = "Item not found") -> Item:
        item = await self.get(hash_value, range_value)
        if not item:
            raise DdbNotFound(
                message=message,
                operation="GetItem",
                table_name=self.table_name,
                key=self.build_key(hash_value, range_value),
            )
        return item

    async def get_by_token(self, token: str) -> Item | None:
        """Fetch the item addressed by an encoded key (see pagination.encode_cursor)."""
        key = decode_cursor(token) or {}
        return await self.get(key.get(self.hash_key), key.get(self.range_key) if self.range_key else None)

    async def put(self, item: Mapping[str, Any] | None) -> Item:
        if not item:
            raise InvalidItem(message="Item is undefined", operation="PutItem", table_name=self.table_name)
        key = self.key_of(item)
        body = _ddb_value(dict(item))

        def _op():
            return self._table.put_item(Item=body)

        await self._run("PutItem", _op, key=key)
        return dict(item)

    async def update(
        self,
        hash_value: Any,
        range_value: Any = None,
        item: Mapping[str, Any] | None = None,
        params: UpdateRequest | None = None,
    ) -> Item | None:
        key = self.build_key(hash_value, range_value, operation="UpdateItem")
        if params is None:
            if not item:
                raise InvalidItem(message="Item is undefined", operation="UpdateItem", table_name=self.table_name)
            # Key attributes cannot be SET; they are addressed by `key`.
            params = build_update_request(item, exclude=tuple(key))

        def _op():
            kwargs: dict[str, Any] = {
                "Key": key,
                "UpdateExpression": params.expression,
                "ReturnValues": "ALL_NEW",
            }
            if params.names:
                kwargs["ExpressionAttributeNames"] = dict(params.names)
            if params.values:
                kwargs["ExpressionAttributeValues"] = _ddb_value(dict(params.values))
            if params.condition_expression:
                kwargs["ConditionExpression"] = params.condition_expression
            resp = self._table.update_item(**kwargs)
            return resp.get("Attributes")

        return await self._run("UpdateItem", _op, key=key)

    async def delete(self, hash_value: Any, range_value: Any = None) -> dict[str, Any]:
        key = self.build_key(hash_value, range_value, operation="DeleteItem")

        def _op():
            return self._table.delete_item(Key=key)

        await self._run("DeleteItem", _op, key=key)
        return key

    # --- query/scan ---

    def _default_names(self, *expressions: str | None) -> dict[str, str] | None:
        text = " ".join(e for e in expressions if e)
        names: dict[str, str] = {}
        if "#HashKey" in text:
            names["#HashKey"] = self.hash_key
        if self.range_key and "#RangeKey" in text:
            names["#RangeKey"] = self.range_key
        return names or None

    def _read_kwargs(
        self,
        *,
        filter_expression: str | None,
        names: Mapping[str, str] | None,
        values: Mapping[str, Any] | None,
        index_name: str | None,
        attributes: Sequence[str] | None,
        start_key: Mapping[str, Any] | None,
        limit: int | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        expr_names: dict[str, str] = dict(names or {})

        if filter_expression:
            kwargs["FilterExpression"] = filter_expression
        if index_name:
            kwargs["IndexName"] = index_name
        if attributes:
            placeholders = []
            for i, attr in enumerate(attributes):
                pk = f"#p{i}"
                expr_names[pk] = str(attr)
                placeholders.append(pk)
            kwargs["ProjectionExpression"] = ", ".join(placeholders)
        if expr_names:
            kwargs["ExpressionAttributeNames"] = expr_names
        if values:
            kwargs["ExpressionAttributeValues"] = _ddb_value(dict(values))
        # Only pass ExclusiveStartKey when present.
        if start_key:
            kwargs["ExclusiveStartKey"] = _ddb_value(dict(start_key))
        if limit is not None:
            if int(limit) < 1:
                raise DdbValidation(message="Limit must be at least 1", operation="Read", table_name=self.table_name)
            kwargs["Limit"] = int(limit)
        return kwargs

    @staticmethod
    def _page(resp: Mapping[str, Any]) -> Page:
        items = list(resp.get("Items") or [])
        return Page(items=items, count=len(items), last_evaluated_key=resp.get("LastEvaluatedKey") or None)

    async def query(self, request: QueryRequest) -> Page:
        if not request.key_condition:
            raise DdbValidation(
                message="Query requires a key condition expression",
                operation="Query",
                table_name=self.table_name,
            )
        names = request.names
        if names is None:
            if request.index_name:
                raise DdbValidation(
                    message=f"Query on index {request.index_name!r} requires explicit attribute names",
                    operation="Query",
                    table_name=self.table_name,
                )
            names = self._default_names(request.key_condition, request.filter_expression)

        kwargs = self._read_kwargs(
            filter_expression=request.filter_expression,
            names=names,
            values=request.values,
            index_name=request.index_name,
            attributes=request.attributes,
            start_key=request.start_key,
            limit=request.limit,
        )
        kwargs["KeyConditionExpression"] = request.key_condition
        kwargs["ScanIndexForward"] = bool(request.scan_index_forward)

        def _op():
            return self._table.query(**kwargs)

        return self._page(await self._run("Query", _op))

    async def scan(self, request: ScanRequest | None = None) -> Page:
        request = request or ScanRequest()
        kwargs = self._read_kwargs(
            filter_expression=request.filter_expression,
            names=request.names,
            values=request.values,
            index_name=request.index_name,
            attributes=request.attributes,
            start_key=request.start_key,
            limit=request.limit,
        )

        def _op():
            return self._table.scan(**kwargs)

        return self._page(await self._run("Scan", _op))
