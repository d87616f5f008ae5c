import logging
from typing import Any, Dict, List, NamedTuple

from pydantic import BaseModel

from src.mcp.protocol import (
    EditFileRequest,
    ListFilesRequest,
    ReadFileRequest,
    ToolAnnotations,
    ToolDefinition,
)

log = logging.getLogger(__name__)

FILENAME_SCHEMA: Dict[str, Any] = {
    "type": "string",
    "pattern": "^[a-zA-Z0-9._-]+$",
    "minLength": 1,
    "maxLength": 255,
}


class RegisteredTool(NamedTuple):
    definition: ToolDefinition
    arguments_model: type[BaseModel]


class ToolRegistry:
    """
    Holds the static tool catalogue: definitions advertised by ``tools/list``
    and the argument model each ``tools/call`` is decoded against.
    """
    def __init__(self):
        self._tools: Dict[str, RegisteredTool] = {}
        self._frozen = False

    def register(
        self,
        name: str,
        description: str,
        arguments_model: type[BaseModel],
        arguments_schema: Dict[str, Any],
        response_description: str,
        read_only: bool,
        destructive: bool,
    ):
        """Registers a new tool in the registry."""
        if self._frozen:
            raise RuntimeError("Tool registry is frozen; tools are registered once at startup.")

        if not name.islower() or " " in name or "." in name:
            raise ValueError(f"Tool name '{name}' must be in snake_case.")

        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")

        definition = ToolDefinition(
            name=name,
            description=description,
            arguments_schema=arguments_schema,
            response_schema={"type": "string", "description": response_description},
            annotations=ToolAnnotations(readOnlyHint=read_only, destructiveHint=destructive),
        )
        self._tools[name] = RegisteredTool(definition=definition, arguments_model=arguments_model)
        log.debug(f"Registered tool: {name}")

    def freeze(self) -> "ToolRegistry":
        self._frozen = True
        return self

    def get(self, name: str) -> RegisteredTool:
        tool = self._tools.get(name)
        if not tool:
            raise ToolNotFoundError(f"Tool '{name}' not found.")
        return tool

    def list_definitions(self) -> List[ToolDefinition]:
        """Definitions in registration order."""
        return [tool.definition for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools


class ToolNotFoundError(Exception):
    pass


def build_default_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        name="list_files",
        description="Lists all non-hidden files in the working directory, providing name, modification time, and line count.",
        arguments_model=ListFilesRequest,
        arguments_schema={"type": "object", "properties": {}},
        response_description="Text output detailing files: name, modified, lines.",
        read_only=True,
        destructive=False,
    )
    registry.register(
        name="read_file",
        description="Reads the content of a specified file, optionally within a given line range.",
        arguments_model=ReadFileRequest,
        arguments_schema={
            "type": "object",
            "properties": {
                "name": dict(FILENAME_SCHEMA),
                "start_line": {"type": "integer", "minimum": 1},
                "end_line": {"type": "integer", "minimum": 1},
            },
            "required": ["name"],
        },
        response_description="Text output of file content or range.",
        read_only=True,
        destructive=False,
    )
    registry.register(
        name="edit_file",
        description="Edits a file using line-based operations, creates if missing (with flag), or appends content.",
        arguments_model=EditFileRequest,
        arguments_schema={
            "type": "object",
            "properties": {
                "name": dict(FILENAME_SCHEMA),
                "edits": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "line": {"type": "integer", "minimum": 1},
                            "content": {"type": "string"},
                            "operation": {"type": "string", "enum": ["replace", "insert", "delete"]},
                        },
                        "required": ["line", "operation"],
                    },
                },
                "append": {"type": "string"},
                "create_if_missing": {"type": "boolean", "default": False},
            },
            "required": ["name"],
        },
        response_description="Text output summarizing edit results.",
        read_only=False,
        destructive=True,
    )
    return registry.freeze()


# Global registry instance
tool_registry = build_default_registry()
