"""
Message codec for the peer wire protocol.

Envelopes are JSON-RPC 2.0 objects. ``encode`` and ``decode`` are pure:
no I/O and no framing. The transport adds the newline terminator.

    Request       {"jsonrpc": "2.0", "id": ..., "method": ..., "params": {...}}
    Notification  {"jsonrpc": "2.0", "method": ..., "params": {...}}
    Response      {"jsonrpc": "2.0", "id": ..., "result": ...}
                  {"jsonrpc": "2.0", "id": ..., "error": {"code", "message", "data"}}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from peerlink.errors import DecodeError, EncodeError

JSONRPC_VERSION = "2.0"

# Standard JSON-RPC codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Protocol-specific bands
SERVER_ERROR = -32000
CONNECTION_ERROR = -32001
PROTOCOL_ERROR = -32002

JsonValue = Union[None, bool, int, float, str, list["JsonValue"], dict[str, "JsonValue"]]

RequestId = Union[int, str, None]

_MISSING = object()


@dataclass
class Request:
    """Outbound method call."""
    id: RequestId
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }


@dataclass
class Notification:
    """Method call that expects no reply."""
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "method": self.method,
            "params": self.params,
        }


@dataclass
class ErrorObject:
    """The ``error`` member of a failed response."""
    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


@dataclass
class Response:
    """Reply to a request. Exactly one of ``result`` / ``error`` is set."""
    id: RequestId
    result: Any = None
    error: ErrorObject | None = None

    @classmethod
    def success(cls, id: RequestId, result: Any) -> "Response":
        return cls(id=id, result=result)

    @classmethod
    def failure(cls, id: RequestId, code: int, message: str, data: Any = None) -> "Response":
        return cls(id=id, error=ErrorObject(code=code, message=message, data=data))

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            out["error"] = self.error.to_dict()
        else:
            out["result"] = self.result
        return out


Envelope = Union[Request, Notification, Response]


def encode(envelope: Envelope) -> bytes:
    """Serialize an envelope to compact UTF-8 JSON (no trailing newline).

    Raises:
        EncodeError: The envelope holds a value JSON cannot represent.
    """
    try:
        text = json.dumps(envelope.to_dict(), separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise EncodeError(f"envelope is not JSON-serializable: {e}") from e
    return text.encode("utf-8")


def decode(data: bytes | str) -> Envelope:
    """Parse one envelope.

    Raises:
        DecodeError: If the bytes are not valid JSON, not an object, or a
            required field is missing or has the wrong type.
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"invalid UTF-8: {e}") from e

    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise DecodeError(f"envelope must be an object, got {type(parsed).__name__}")

    version = parsed.get("jsonrpc", _MISSING)
    if version is _MISSING:
        raise DecodeError("missing version tag 'jsonrpc'")
    if version != JSONRPC_VERSION:
        raise DecodeError(f"unsupported version tag: {version!r}")

    if "method" in parsed:
        return _decode_call(parsed)
    return _decode_response(parsed)


def _decode_call(parsed: dict[str, Any]) -> Request | Notification:
    method = parsed["method"]
    if not isinstance(method, str) or not method:
        raise DecodeError("'method' must be a non-empty string")

    params = parsed.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise DecodeError("'params' must be an object")

    if "id" not in parsed:
        return Notification(method=method, params=params)
    return Request(id=_check_id(parsed["id"]), method=method, params=params)


def _decode_response(parsed: dict[str, Any]) -> Response:
    if "id" not in parsed:
        raise DecodeError("missing required field 'id'")
    request_id = _check_id(parsed["id"])

    has_result = "result" in parsed
    has_error = "error" in parsed
    if has_result == has_error:
        raise DecodeError("response must carry exactly one of 'result' or 'error'")

    if has_result:
        return Response(id=request_id, result=parsed["result"])

    raw = parsed["error"]
    if not isinstance(raw, dict):
        raise DecodeError("'error' must be an object")
    code = raw.get("code")
    message = raw.get("message")
    if not isinstance(code, int) or isinstance(code, bool):
        raise DecodeError("error 'code' must be an integer")
    if not isinstance(message, str):
        raise DecodeError("error 'message' must be a string")
    return Response(
        id=request_id,
        error=ErrorObject(code=code, message=message, data=raw.get("data")),
    )


def _check_id(value: Any) -> RequestId:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise DecodeError(f"'id' must be a string, integer or null, got {type(value).__name__}")
