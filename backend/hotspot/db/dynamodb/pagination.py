from __future__ import annotations

import base64
import binascii
import json
from decimal import Decimal
from typing import Any, Mapping, Sequence

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .errors import DdbValidation, InvalidCursor


_TOKEN_VERSION = 1

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_ddb_number(value: Any) -> Any:
    # TypeSerializer refuses floats; positions coming back from boto3 already
    # hold Decimals, this only matters for hand-built positions.
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, Mapping):
        return {k: _to_ddb_number(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_ddb_number(v) for v in value]
    return value


def _binary_to_text(av: dict[str, Any]) -> dict[str, Any]:
    # JSON has no bytes; B and BS payloads travel as standard base64 text.
    (tag, value), = av.items()
    if tag == "B":
        return {"B": base64.b64encode(bytes(value)).decode("ascii")}
    if tag == "BS":
        return {"BS": sorted(base64.b64encode(bytes(v)).decode("ascii") for v in value)}
    if tag == "M":
        return {"M": {k: _binary_to_text(v) for k, v in value.items()}}
    if tag == "L":
        return {"L": [_binary_to_text(v) for v in value]}
    return av


def _binary_from_text(av: Any) -> Any:
    if not isinstance(av, dict) or len(av) != 1:
        return av
    (tag, value), = av.items()
    if tag == "B":
        return {"B": base64.b64decode(value, validate=True)}
    if tag == "BS":
        return {"BS": [base64.b64decode(v, validate=True) for v in value]}
    if tag == "M" and isinstance(value, dict):
        return {"M": {k: _binary_from_text(v) for k, v in value.items()}}
    if tag == "L" and isinstance(value, list):
        return {"L": [_binary_from_text(v) for v in value]}
    return av


def _serialize_position(position: Mapping[str, Any]) -> dict[str, Any]:
    try:
        return {str(k): _binary_to_text(_serializer.serialize(_to_ddb_number(v))) for k, v in position.items()}
    except TypeError as e:
        raise DdbValidation(message=f"Unsupported cursor position value: {e}", cause=e) from e


def encode_cursor(position: Mapping[str, Any] | None) -> str:
    """Encode a backend continuation position (LastEvaluatedKey) as an opaque token.

    `None` and `{}` both encode to the "no position" token. Keys are sorted so
    logically-equal positions always produce the same token.

    Floats are stored as `Decimal(str(f))`, so a position holding 0.1 decodes
    to `Decimal("0.1")`. Binary values decode to boto3 `Binary`.
    """
    payload = {
        "v": _TOKEN_VERSION,
        "lek": _serialize_position(position) if position else None,
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(token: str | None) -> dict[str, Any] | None:
    """Decode a token from `encode_cursor` back into a backend position.

    Returns None for an absent token and for the "no position" token. Any
    malformed token raises InvalidCursor.
    """
    if token is None or token == "":
        return None
    if not isinstance(token, str):
        raise InvalidCursor(message="Invalid cursor")

    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True).decode("utf-8")
        payload = json.loads(raw)
    except (UnicodeError, binascii.Error, ValueError) as e:
        raise InvalidCursor(message="Invalid cursor", cause=e) from e

    version = payload.get("v") if isinstance(payload, dict) else None
    if type(version) is not int or version != _TOKEN_VERSION:
        raise InvalidCursor(message="Invalid cursor")

    lek = payload.get("lek")
    if lek is None:
        return None
    if not isinstance(lek, dict) or not lek:
        raise InvalidCursor(message="Invalid cursor")

    try:
        position = {k: _deserializer.deserialize(_binary_from_text(v)) for k, v in lek.items()}
    except Exception as e:  # noqa: BLE001
        raise InvalidCursor(message="Invalid cursor", cause=e) from e

    # The DynamoDB decimal context does not trap InvalidOperation, so "N": "abc"
    # deserializes to NaN instead of failing.
    if any(isinstance(v, Decimal) and not v.is_finite() for v in position.values()):
        raise InvalidCursor(message="Invalid cursor")
    return position


def decode_cursors(tokens: Sequence[str | None] | None, *, size: int) -> list[dict[str, Any] | None] | None:
    """Decode a per-partition cursor list, one entry per partition."""
    if tokens is None:
        return None
    if isinstance(tokens, str) or len(tokens) != size:
        raise InvalidCursor(message=f"Expected {size} cursors, one per partition")
    return [decode_cursor(t) for t in tokens]


def first_cursor(tokens: Sequence[str | None] | str | None) -> str | None:
    """Accept either a single token or the one-element list that collections return."""
    if tokens is None or isinstance(tokens, str):
        return tokens
    if len(tokens) > 1:
        raise InvalidCursor(message="Expected a single cursor")
    return tokens[0] if tokens else None
