"""
Tool catalogue, validation, safety guard and dispatch

Import `definitions` to register the catalogue into `tool_catalogue`.
"""
from .models import ExecutableCall, ToolArguments, ToolCall, ToolDefinition, entity_ref
from .registry import ToolRegistry, tool_catalogue
from .responses import ToolError, ToolResult, ToolSuccess

__all__ = [
    "ExecutableCall",
    "ToolArguments",
    "ToolCall",
    "ToolDefinition",
    "entity_ref",
    "ToolRegistry",
    "tool_catalogue",
    "ToolError",
    "ToolResult",
    "ToolSuccess",
]
