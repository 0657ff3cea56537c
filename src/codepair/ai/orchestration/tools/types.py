"""Tool system types.

A tool is a ``name -> {definition, execute}`` pair: the definition is
advertised to the model, ``execute`` is invoked by the scheduler. The core
knows nothing about a tool beyond this contract.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Literal, Mapping, Protocol, Union, runtime_checkable

from ..types import ToolCall

__all__ = [
    "ParameterType",
    "ToolParameter",
    "ToolDefinition",
    "ToolOutput",
    "ToolExpansion",
    "ToolReturn",
    "ToolHandler",
    "AsyncToolHandler",
    "Tool",
    "SimpleTool",
]


# -----------------------------------------------------------------------------
# Definitions
# -----------------------------------------------------------------------------

ParameterType = Literal["string", "integer", "number", "boolean", "array", "object"]


@dataclass(slots=True, frozen=True)
class ToolParameter:
    """One named parameter of a tool."""

    name: str
    type: ParameterType = "string"
    description: str = ""
    required: bool = False
    enum: tuple[Any, ...] | None = None
    items: Mapping[str, Any] | None = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.type == "array":
            schema["items"] = dict(self.items) if self.items else {}
        return schema


@dataclass(slots=True, frozen=True)
class ToolDefinition:
    """Static description of a tool used to advertise it to the model.

    Attributes:
        name: Unique tool name.
        description: What the tool does, written for the model.
        parameters: Ordered parameter list.
        is_write: Whether the tool proposes file changes.
    """

    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()
    is_write: bool = False

    def json_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {param.name: param.to_schema() for param in self.parameters},
            "required": [param.name for param in self.parameters if param.required],
        }

    def to_openai_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolOutput:
    """What a tool hands back: ``{success, output?, error?, data?}``."""

    success: bool
    output: str | None = None
    error: str | None = None
    data: Mapping[str, Any] | None = None

    @classmethod
    def ok(cls, output: str | None = None, **data: Any) -> ToolOutput:
        return cls(success=True, output=output, data=data or None)

    @classmethod
    def fail(cls, error: str, **data: Any) -> ToolOutput:
        return cls(success=False, error=error, data=data or None)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> ToolOutput:
        data = payload.get("data")
        return cls(
            success=bool(payload.get("success", True)),
            output=_optional_str(payload.get("output")),
            error=_optional_str(payload.get("error")),
            data=data if isinstance(data, Mapping) else None,
        )


@dataclass(slots=True, frozen=True)
class ToolExpansion:
    """Returned by a tool that delegates to nested sub-calls.

    The scheduler executes ``calls`` one level deeper and combines their
    results into the parent call's result.
    """

    calls: tuple[ToolCall, ...]
    summary: str = ""


ToolReturn = Union[ToolOutput, ToolExpansion, str, Mapping[str, Any], None]


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


# -----------------------------------------------------------------------------
# Tool Protocol
# -----------------------------------------------------------------------------

ToolHandler = Callable[[Mapping[str, Any]], ToolReturn]
AsyncToolHandler = Callable[[Mapping[str, Any]], Coroutine[Any, Any, ToolReturn]]


@runtime_checkable
class Tool(Protocol):
    """Protocol for tool implementations."""

    @property
    def definition(self) -> ToolDefinition:
        ...

    async def execute(self, arguments: Mapping[str, Any]) -> ToolReturn:
        ...


@dataclass
class SimpleTool:
    """Tool built from a definition and a plain (sync or async) function.

    Example:
        def greet(args):
            return f"Hello, {args.get('name', 'World')}!"

        tool = SimpleTool(
            definition=ToolDefinition(
                name="greet",
                description="Greet someone",
                parameters=(ToolParameter("name"),),
            ),
            handler=greet,
        )
    """

    definition: ToolDefinition
    handler: ToolHandler | AsyncToolHandler
    _is_async: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._is_async = inspect.iscoroutinefunction(self.handler)

    @property
    def name(self) -> str:
        return self.definition.name

    async def execute(self, arguments: Mapping[str, Any]) -> ToolReturn:
        if self._is_async:
            return await self.handler(arguments)  # type: ignore[misc]
        return self.handler(arguments)  # type: ignore[return-value]
