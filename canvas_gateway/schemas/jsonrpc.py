"""JSON-RPC 2.0 envelope schema, error codes and response builders."""

from __future__ import annotations

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, ValidationError

from canvas_gateway.errors import InvalidRequest

JSON_RPC_VERSION = "2.0"

JsonRpcId = Union[StrictStr, StrictInt, StrictFloat, None]


class ErrorCode:
    """Standard JSON-RPC 2.0 codes plus the transport-level codes below -32000."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    UNAUTHORIZED = -32001
    RATE_LIMITED = -32029


class JsonRpcRequest(BaseModel):
    """Validated JSON-RPC 2.0 request envelope."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: Literal["2.0"]
    method: StrictStr = Field(..., min_length=1)
    params: Any = None
    id: JsonRpcId = None

    @property
    def is_notification(self) -> bool:
        """A request without an ``id`` key never gets a response."""
        return "id" not in self.model_fields_set


class JsonRpcErrorObject(BaseModel):
    """Structured error carried by a failed response."""

    code: int
    message: str
    data: Any | None = None


class JsonRpcResponse(BaseModel):
    """Response envelope.  Exactly one of ``result`` / ``error`` is present."""

    jsonrpc: Literal["2.0"] = JSON_RPC_VERSION
    id: JsonRpcId = None
    result: Any | None = None
    error: JsonRpcErrorObject | None = None


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON and cannot be written back out.
    raise ValueError(f"Invalid JSON constant: {name}")


def decode_body(raw: bytes | str) -> Any:
    """Decode raw bytes into a JSON value.

    Raises:
        ValueError: when the bytes are not UTF-8 JSON (a parse error, not
            an invalid request).
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw, parse_constant=_reject_constant)


def parse_request(payload: Any) -> JsonRpcRequest:
    """Validate an already-decoded payload as a request envelope."""
    if not isinstance(payload, dict):
        raise InvalidRequest("JSON-RPC request must be an object")
    try:
        return JsonRpcRequest.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRequest(str(exc)) from exc


def is_notification_payload(payload: Any) -> bool:
    """True for an object payload with no ``id`` key, valid or not."""
    return isinstance(payload, dict) and "id" not in payload


def error_response(request_id: Any, code: int, message: str, data: Any | None = None) -> dict:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSON_RPC_VERSION, "id": request_id, "error": error}


def result_response(request_id: Any, result: Any) -> dict:
    # Built by hand so that a ``None`` result is still emitted.
    return {"jsonrpc": JSON_RPC_VERSION, "id": request_id, "result": result}
