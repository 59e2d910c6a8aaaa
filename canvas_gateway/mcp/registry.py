"""Tool registry – maps a JSON-RPC method name to a params schema and handler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Union

from mcp.types import Tool
from pydantic import BaseModel

from canvas_gateway.errors import ToolRegistrationError
from canvas_gateway.schemas.jsonrpc import JsonRpcRequest

ToolHandler = Callable[[Any, JsonRpcRequest], Union[Awaitable[Any], Any]]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    params_model: type[BaseModel]
    handler: ToolHandler
    description: str = ""

    def validate_params(self, params: Any) -> BaseModel:
        """Validate raw ``params``; a missing value is treated as an empty object.

        Raises:
            pydantic.ValidationError: when the params do not match the schema.
        """
        return self.params_model.model_validate({} if params is None else params)

    def to_tool(self) -> Tool:
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.params_model.model_json_schema(),
        )


class ToolRegistry:
    """Explicit registry built once at startup and handed to the dispatcher.

    Each name may be registered once; a second registration is a
    configuration error, not a request error.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(
        self,
        name: str,
        params_model: type[BaseModel],
        handler: ToolHandler,
        description: str = "",
    ) -> ToolDefinition:
        if name in self._tools:
            raise ToolRegistrationError(name)
        definition = ToolDefinition(
            name=name, params_model=params_model, handler=handler, description=description
        )
        self._tools[name] = definition
        return definition

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[Tool]:
        """Describe every registered tool in MCP ``Tool`` form."""
        return [definition.to_tool() for definition in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
