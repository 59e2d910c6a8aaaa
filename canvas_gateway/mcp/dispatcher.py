"""JSON-RPC dispatcher – turns a raw request body into a routed tool call."""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any

from pydantic import ValidationError

from canvas_gateway.errors import InvalidRequest, ToolExecutionError
from canvas_gateway.mcp.registry import ToolRegistry
from canvas_gateway.schemas.jsonrpc import (
    ErrorCode,
    JsonRpcRequest,
    decode_body,
    error_response,
    is_notification_payload,
    parse_request,
    result_response,
)

logger = logging.getLogger("gateway.dispatcher")

INTERNAL_ERROR_MESSAGE = "Internal error while executing method."


class Dispatcher:
    """Resolve, validate and invoke tools from a :class:`ToolRegistry`.

    ``dispatch`` never raises for protocol problems: every failure becomes
    a JSON-RPC error object, and notifications (requests without ``id``)
    always yield ``None``.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    async def dispatch(self, raw_body: bytes | str) -> dict | None:
        """Handle one undecoded request body."""
        try:
            payload = decode_body(raw_body)
        except ValueError:
            logger.warning("Rejected request with malformed JSON body.")
            return error_response(None, ErrorCode.PARSE_ERROR, "Parse error")
        return await self.handle_payload(payload)

    async def handle_payload(self, payload: Any) -> dict | None:
        """Handle one decoded JSON value."""
        try:
            request = parse_request(payload)
        except InvalidRequest:
            if is_notification_payload(payload):
                logger.warning("Dropped invalid JSON-RPC notification.")
                return None
            logger.warning("Received invalid JSON-RPC payload.")
            return error_response(None, ErrorCode.INVALID_REQUEST, "Invalid Request")

        response = await self.handle_request(request)
        return None if request.is_notification else response

    async def handle_request(self, request: JsonRpcRequest) -> dict:
        request_id = request.id
        tool = self.registry.get(request.method)

        if tool is None:
            logger.info("Method '%s' was not found.", request.method)
            return error_response(
                request_id,
                ErrorCode.METHOD_NOT_FOUND,
                f"Method '{request.method}' was not found.",
            )

        try:
            params = tool.validate_params(request.params)
        except ValidationError as exc:
            issues = json.loads(exc.json(include_url=False))
            logger.warning("Validation failed for method '%s': %s", request.method, issues)
            return error_response(
                request_id, ErrorCode.INVALID_PARAMS, "Invalid params", {"issues": issues}
            )

        try:
            result = tool.handler(params, request)
            if inspect.isawaitable(result):
                result = await result
        except ToolExecutionError as exc:
            logger.error("Handler for method '%s' failed: %s", request.method, exc)
            return error_response(
                request_id, ErrorCode.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE, exc.data
            )
        except Exception:
            logger.exception("Handler for method '%s' threw an error.", request.method)
            return error_response(request_id, ErrorCode.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE)

        return result_response(request_id, result)
