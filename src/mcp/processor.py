"""Tool processor.

Implements the ``initialize`` / ``tools/list`` / ``tools/call`` method set
independently of any transport. Protocol problems (unknown method, arguments
that do not decode) come back as a JSON-RPC error; everything the file
operation service reports is rendered as tool-result text with ``isError``.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from src.fileops.service import FileOperationError, FileOperationService
from src.mcp.errors import (
    INTERNAL_ERROR,
    ErrorData,
    new_error_detail,
    new_invalid_params_error,
    new_method_not_found_error,
    to_jsonrpc_error,
)
from src.mcp.protocol import (
    Capabilities,
    EditFileRequest,
    ErrorDetail,
    FileInfo,
    InitializeResult,
    JSONRPCError,
    JSONRPCRequest,
    ListFilesRequest,
    ListToolsResult,
    MCPToolResult,
    ReadFileRequest,
    ServerInfo,
    ToolCallParams,
)
from src.tools.registry import ToolNotFoundError, ToolRegistry, tool_registry
from src.utils import audit

log = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "file-editing-server"
SERVER_VERSION = "1.0.0"
SERVER_DESCRIPTION = "High-performance file editing server for AI agents"

SERVER_INFO = ServerInfo(name=SERVER_NAME, version=SERVER_VERSION, description=SERVER_DESCRIPTION)


class JSONRPCDispatchError(Exception):
    """Protocol-level failure raised while dispatching a request."""

    def __init__(self, detail: ErrorDetail):
        self.detail = detail
        super().__init__(detail.message)


# --- Result formatting ---


def format_list_files_result(files: List[FileInfo]) -> str:
    if not files:
        return "Total files: 0"
    parts = ["Files in directory:\n\n"]
    for f in files:
        lines = "(unknown)" if f.lines == -1 else str(f.lines)
        parts.append(f"name: {f.name}, modified: {f.modified}, lines: {lines}\n")
    parts.append(f"\nTotal files: {len(files)}")
    return "".join(parts)


def format_read_file_result(
    content: str,
    filename: str,
    total_lines: int,
    req_start_line: int,
    req_end_line: int,
    actual_end_line: int,
    is_range_request: bool,
) -> str:
    if total_lines == 0 and not is_range_request:
        return f"File: {filename} (0 lines)\n\n"

    if is_range_request:
        if content == "" and req_start_line > 0:
            # Nothing in range: shown as an empty span ending just before the start.
            start_display = req_start_line
            end_display = max(req_start_line - 1, 0)
        elif content == "":
            start_display, end_display = 1, 0
        else:
            start_display = req_start_line if req_start_line > 0 else 1
            # actual_end_line indexes the last returned line within ``content``.
            end_display = start_display + actual_end_line
        header = f"File: {filename} (lines {start_display}-{end_display} of {total_lines} total)"
    else:
        header = f"File: {filename} ({total_lines} lines)"

    if content == "":
        return header + "\n\n"
    return f"{header}\n\n{content}"


def format_edit_file_result(filename: str, lines_modified: int, new_total_lines: int, file_created: bool) -> str:
    return (
        f"File edited successfully: {filename}\n"
        f"Lines modified: {lines_modified}\n"
        f"Total lines: {new_total_lines}\n"
        f"File created: {'true' if file_created else 'false'}"
    )


def format_tool_error(detail: Optional[ErrorDetail]) -> str:
    if detail is None:
        return "Error: An unexpected error occurred, but no details were provided."
    return f"Error: {detail.message}"


def unknown_tool_result(name: str) -> MCPToolResult:
    return MCPToolResult.text(f"Error: Unknown tool '{name}'.", is_error=True)


def validation_issues(exc: ValidationError) -> Dict[str, Any]:
    """Flattens pydantic errors into ``{"field.path": "message"}``."""
    issues: Dict[str, Any] = {}
    for error in exc.errors(include_url=False):
        location = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        issues[location] = error.get("msg", "invalid value")
    return issues


# --- Processor ---


class ToolProcessor:
    """Stateless dispatcher; safe to share between threads."""

    def __init__(self, service: FileOperationService, registry: ToolRegistry = tool_registry):
        self._service = service
        self._registry = registry
        self._handlers: Dict[str, Callable[[Any], str]] = {
            "list_files": self._list_files,
            "read_file": self._read_file,
            "edit_file": self._edit_file,
        }

    @property
    def tool_names(self) -> Iterable[str]:
        return [definition.name for definition in self._registry.list_definitions()]

    def process_request(self, request: JSONRPCRequest) -> Tuple[Optional[MCPToolResult], Optional[JSONRPCError]]:
        """Runs one request. Exactly one element of the returned pair is set."""
        try:
            return self._dispatch(request), None
        except JSONRPCDispatchError as exc:
            log.info(
                "Request failed at protocol level",
                extra={"method": request.method, "code": exc.detail.code},
            )
            return None, to_jsonrpc_error(exc.detail)

    def _dispatch(self, request: JSONRPCRequest) -> MCPToolResult:
        method = request.method or ""
        log.debug(f"Dispatching method: {method}")

        if method == "initialize":
            return self.handle_initialize()
        elif method == "tools/list":
            return self.handle_list_tools()
        elif method == "tools/call":
            return self.handle_call_tool(request.params)

        raise JSONRPCDispatchError(new_method_not_found_error(method))

    # --- Method Handlers ---

    def handle_initialize(self) -> MCPToolResult:
        result = InitializeResult(
            protocolVersion=PROTOCOL_VERSION,
            capabilities=Capabilities(),
            serverInfo=SERVER_INFO,
        )
        return self._serialize_as_text(result, "initialize")

    def handle_list_tools(self) -> MCPToolResult:
        result = ListToolsResult(tools=self._registry.list_definitions())
        return self._serialize_as_text(result, "tools/list")

    def _serialize_as_text(self, payload: BaseModel, method: str) -> MCPToolResult:
        try:
            text = payload.model_dump_json()
        except Exception as exc:
            log.exception(f"Failed to marshal {method} response")
            return MCPToolResult.text(
                f"Error: Failed to marshal {method} response: {exc} (Code: {INTERNAL_ERROR})",
                is_error=True,
            )
        return MCPToolResult.text(text)

    def handle_call_tool(self, params: Any) -> MCPToolResult:
        try:
            call = ToolCallParams.model_validate(params)
        except ValidationError as e:
            raise JSONRPCDispatchError(
                new_invalid_params_error("Invalid parameters for tools/call", validation_issues(e))
            )

        try:
            tool = self._registry.get(call.name)
        except ToolNotFoundError:
            log.warning(f"Unknown tool requested: {call.name}")
            return unknown_tool_result(call.name)

        arguments = call.arguments if call.arguments is not None else {}
        try:
            parsed = tool.arguments_model.model_validate(arguments)
        except ValidationError as e:
            raise JSONRPCDispatchError(
                new_invalid_params_error(f"Invalid parameters for {call.name}", validation_issues(e))
            )

        return self.execute_tool(call.name, parsed)

    def execute_tool(self, name: str, arguments: BaseModel) -> MCPToolResult:
        """Runs an already-decoded tool call and renders its outcome as text."""
        handler = self._handlers.get(name)
        if handler is None:
            return unknown_tool_result(name)

        try:
            text = handler(arguments)
        except FileOperationError as exc:
            log.info(
                f"Tool '{name}' reported an error",
                extra={"tool": name, "code": exc.detail.code if exc.detail else None},
            )
            audit.tool_execution(name, "error", error=str(exc))
            return MCPToolResult.text(format_tool_error(exc.detail), is_error=True)
        except Exception as exc:
            log.exception(f"Error executing tool '{name}'")
            audit.tool_execution(name, "error", error=type(exc).__name__)
            detail = new_error_detail(
                INTERNAL_ERROR,
                f"Internal error during execution of tool '{name}'.",
                ErrorData(details=str(exc)),
            )
            return MCPToolResult.text(format_tool_error(detail), is_error=True)

        audit.tool_execution(name, "success")
        return MCPToolResult.text(text)

    # --- Tool Handlers ---

    def _list_files(self, arguments: ListFilesRequest) -> str:
        response = self._service.list_files(arguments)
        return format_list_files_result(response.files)

    def _read_file(self, arguments: ReadFileRequest) -> str:
        response = self._service.read_file(arguments)
        return format_read_file_result(
            response.content,
            response.filename,
            response.total_lines,
            response.start_line,
            response.end_line,
            response.actual_end_line,
            response.is_range_request,
        )

    def _edit_file(self, arguments: EditFileRequest) -> str:
        response = self._service.edit_file(arguments)
        return format_edit_file_result(
            response.filename,
            response.lines_modified,
            response.new_total_lines,
            response.file_created,
        )
