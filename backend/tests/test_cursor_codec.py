from __future__ import annotations

import base64
import json
from decimal import Decimal

import pytest
from boto3.dynamodb.types import Binary

from hotspot.db.dynamodb.errors import InvalidCursor
from hotspot.db.dynamodb.pagination import decode_cursor, decode_cursors, encode_cursor, first_cursor


def test_positions_round_trip():
    for position in (
        {"Mac": "aa:bb"},
        {"ID": "p1", "Provider": "facebook"},
        {"ID": "log-1", "Year": Decimal("2021"), "Timestamp": Decimal("1612137600000")},
        {"ID": "x", "Score": Decimal("1.5")},
    ):
        assert decode_cursor(encode_cursor(position)) == position


def test_plain_numbers_round_trip_as_equal_decimals():
    out = decode_cursor(encode_cursor({"ID": "a", "Year": 2021, "Ratio": 0.5}))
    assert out == {"ID": "a", "Year": 2021, "Ratio": 0.5}
    assert isinstance(out["Year"], Decimal)


def test_no_position_round_trips_to_none():
    token = encode_cursor(None)
    assert isinstance(token, str) and token
    assert decode_cursor(token) is None
    assert encode_cursor({}) == token


def test_absent_token_decodes_to_none():
    assert decode_cursor(None) is None
    assert decode_cursor("") is None


def test_encoding_ignores_field_insertion_order():
    a = {"ID": "log-1", "Year": 2021, "Timestamp": 5}
    b = {"Timestamp": 5, "Year": 2021, "ID": "log-1"}
    assert encode_cursor(a) == encode_cursor(b)


def test_binary_positions_round_trip():
    position = {"ID": Binary(b"\x01\x02\xff"), "Chunks": {b"b", b"a"}}
    token = encode_cursor(position)
    assert decode_cursor(token) == {"ID": Binary(b"\x01\x02\xff"), "Chunks": {Binary(b"a"), Binary(b"b")}}
    assert encode_cursor({"Chunks": {b"a", b"b"}, "ID": b"\x01\x02\xff"}) == token


def test_float_positions_decode_to_decimals():
    assert decode_cursor(encode_cursor({"Timestamp": 0.1})) == {"Timestamp": Decimal("0.1")}


def test_tokens_are_url_safe():
    token = encode_cursor({"ID": "???>>>~~~" * 5})
    assert "+" not in token and "/" not in token and "=" not in token


@pytest.mark.parametrize(
    "token",
    [
        "not base64 !!",
        "%%%%",
        base64.urlsafe_b64encode(b"not json").decode(),
        base64.urlsafe_b64encode(b"[1,2,3]").decode(),
        base64.urlsafe_b64encode(json.dumps({"v": 99, "lek": None}).encode()).decode(),
        base64.urlsafe_b64encode(json.dumps({"v": 1, "lek": "ID"}).encode()).decode(),
        base64.urlsafe_b64encode(json.dumps({"v": 1, "lek": {"ID": "plain"}}).encode()).decode(),
        base64.urlsafe_b64encode(json.dumps({"v": 1, "lek": {"Year": {"N": "abc"}}}).encode()).decode(),
        base64.urlsafe_b64encode(b"\xff\xfe").decode(),
        base64.urlsafe_b64encode(json.dumps({"v": True, "lek": None}).encode()).decode(),
        base64.urlsafe_b64encode(json.dumps({"v": 1.0, "lek": None}).encode()).decode(),
        base64.urlsafe_b64encode(json.dumps({"v": 1, "lek": {"ID": {"B": "!!"}}}).encode()).decode(),
    ],
)
def test_malformed_tokens_raise_invalid_cursor(token):
    with pytest.raises(InvalidCursor):
        decode_cursor(token)


def test_decode_cursors_checks_partition_count():
    tokens = [encode_cursor({"ID": "a"}), encode_cursor(None)]
    assert decode_cursors(tokens, size=2) == [{"ID": "a"}, None]
    assert decode_cursors(None, size=2) is None
    with pytest.raises(InvalidCursor):
        decode_cursors(tokens, size=3)


def test_first_cursor_accepts_single_token_or_collection_list():
    tok = encode_cursor({"ID": "a"})
    assert first_cursor(tok) == tok
    assert first_cursor([tok]) == tok
    assert first_cursor([]) is None
    assert first_cursor(None) is None
    with pytest.raises(InvalidCursor):
        first_cursor([tok, tok])
