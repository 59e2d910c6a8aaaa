"""Pydantic schemas."""

from canvas_gateway.schemas.canvas import (
    CanvasCourseSummary,
    CanvasUserProfile,
    EmptyParams,
    ListCoursesParams,
)
from canvas_gateway.schemas.jsonrpc import (
    ErrorCode,
    JsonRpcErrorObject,
    JsonRpcRequest,
    JsonRpcResponse,
)

__all__ = [
    "CanvasCourseSummary",
    "CanvasUserProfile",
    "EmptyParams",
    "ListCoursesParams",
    "ErrorCode",
    "JsonRpcErrorObject",
    "JsonRpcRequest",
    "JsonRpcResponse",
]
