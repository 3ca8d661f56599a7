"""Tests for the JSON-RPC envelope codec."""

from __future__ import annotations

import json

import pytest

from peerlink.codec import (
    METHOD_NOT_FOUND,
    Notification,
    Request,
    Response,
    decode,
    encode,
)
from peerlink.errors import CodecError, DecodeError, EncodeError


class TestEncode:
    def test_request_is_compact_without_newline(self) -> None:
        data = encode(Request(id=1, method="mcp.ping"))
        assert not data.endswith(b"\n")
        assert b" " not in data
        assert json.loads(data) == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "mcp.ping",
            "params": {},
        }

    def test_notification_has_no_id(self) -> None:
        parsed = json.loads(encode(Notification(method="log", params={"x": 1})))
        assert "id" not in parsed
        assert parsed["method"] == "log"

    def test_success_response(self) -> None:
        parsed = json.loads(encode(Response.success(7, {"sum": 8})))
        assert parsed == {"jsonrpc": "2.0", "id": 7, "result": {"sum": 8}}

    def test_failure_response_omits_result(self) -> None:
        parsed = json.loads(encode(Response.failure(7, METHOD_NOT_FOUND, "nope")))
        assert "result" not in parsed
        assert parsed["error"] == {"code": -32601, "message": "nope"}

    def test_null_result_is_kept(self) -> None:
        parsed = json.loads(encode(Response.success(1, None)))
        assert "result" in parsed
        assert parsed["result"] is None

    def test_unserializable_raises_encode_error(self) -> None:
        with pytest.raises(EncodeError, match="not JSON-serializable") as exc_info:
            encode(Request(id=1, method="x", params={"obj": object()}))
        assert isinstance(exc_info.value, CodecError)
        assert not isinstance(exc_info.value, DecodeError)

    def test_non_ascii_kept_as_utf8(self) -> None:
        data = encode(Request(id=1, method="echo", params={"message": "héllo"}))
        assert "héllo".encode() in data


class TestDecode:
    def test_request(self) -> None:
        msg = decode(b'{"jsonrpc":"2.0","id":3,"method":"add","params":{"a":1}}')
        assert msg == Request(id=3, method="add", params={"a": 1})

    def test_request_without_params(self) -> None:
        msg = decode('{"jsonrpc":"2.0","id":"abc","method":"mcp.ping"}')
        assert isinstance(msg, Request)
        assert msg.id == "abc"
        assert msg.params == {}

    def test_notification(self) -> None:
        msg = decode(b'{"jsonrpc":"2.0","method":"progress"}')
        assert isinstance(msg, Notification)

    def test_success_response(self) -> None:
        msg = decode(b'{"jsonrpc":"2.0","id":1,"result":{"ok":true}}')
        assert isinstance(msg, Response)
        assert not msg.is_error
        assert msg.result == {"ok": True}

    def test_error_response(self) -> None:
        msg = decode(b'{"jsonrpc":"2.0","id":1,"error":{"code":-32601,"message":"x","data":[1]}}')
        assert isinstance(msg, Response)
        assert msg.is_error
        assert msg.error.code == -32601
        assert msg.error.data == [1]

    def test_roundtrip_request(self) -> None:
        request = Request(id=9, method="echo", params={"message": "hi"})
        assert decode(encode(request)) == request

    @pytest.mark.parametrize(
        ("raw", "match"),
        [
            (b"not json", "invalid JSON"),
            (b"[1,2]", "must be an object"),
            (b'{"id":1,"result":1}', "missing version tag"),
            (b'{"jsonrpc":"1.0","id":1,"result":1}', "unsupported version"),
            (b'{"jsonrpc":"2.0","result":1}', "missing required field 'id'"),
            (b'{"jsonrpc":"2.0","id":1}', "exactly one"),
            (b'{"jsonrpc":"2.0","id":1,"result":1,"error":{"code":1,"message":"m"}}', "exactly one"),
            (b'{"jsonrpc":"2.0","id":1,"error":"boom"}', "must be an object"),
            (b'{"jsonrpc":"2.0","id":1,"error":{"message":"m"}}', "code"),
            (b'{"jsonrpc":"2.0","id":1,"error":{"code":1}}', "message"),
            (b'{"jsonrpc":"2.0","id":1.5,"result":1}', "'id'"),
            (b'{"jsonrpc":"2.0","id":1,"method":""}', "method"),
            (b'{"jsonrpc":"2.0","id":1,"method":"x","params":[1]}', "params"),
            (b"\xff\xfe", "invalid UTF-8"),
        ],
    )
    def test_malformed(self, raw: bytes, match: str) -> None:
        with pytest.raises(DecodeError, match=match):
            decode(raw)
