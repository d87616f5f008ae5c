from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, field_serializer, field_validator, model_validator
from typing import Any, Optional, Dict, List, Literal, Union

JSONRPC_VERSION = "2.0"

RequestId = Union[str, int, float, None]

# --- JSON-RPC 2.0 Base Models ---

class JSONRPCRequest(BaseModel):
    """Incoming envelope.

    ``jsonrpc`` and ``method`` may be missing or null here; the transports
    check them after decoding so that a bad version or an empty method still
    gets an Invalid Request answer carrying the caller's id. ``params`` stays
    as decoded JSON until the method is known.
    """
    jsonrpc: Optional[str] = None
    id: RequestId = None
    method: Optional[str] = None
    params: Optional[Any] = None

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, request_id):
        if isinstance(request_id, bool):
            raise ValueError("JSON-RPC id must not be boolean.")

        if isinstance(request_id, float) and request_id.is_integer():
            return int(request_id)

        return request_id


class StrictJSONRPCRequest(JSONRPCRequest):
    """HTTP variant: unknown top-level members are rejected."""
    model_config = ConfigDict(extra="forbid")


class JSONRPCErrorData(BaseModel):
    filename: Optional[str] = None
    operation: Optional[str] = None
    timestamp: Optional[str] = None
    details: Optional[str] = None


class JSONRPCError(BaseModel):
    code: int
    message: str
    data: Optional[JSONRPCErrorData] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ErrorDetail(BaseModel):
    """Internal error representation produced by the error catalog."""
    code: int
    message: str
    data: Optional[Any] = None

    @field_serializer("data")
    def serialize_data(self, data: Any):
        if isinstance(data, BaseModel):
            return data.model_dump(exclude_none=True)
        return data


class ErrorResponse(BaseModel):
    """Body of an HTTP transport failure."""
    error: ErrorDetail

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# --- MCP Tool Result Envelope ---

class MCPToolContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class MCPToolResult(BaseModel):
    content: List[MCPToolContent] = Field(min_length=1)
    isError: bool = False

    @classmethod
    def text(cls, text: str, is_error: bool = False) -> "MCPToolResult":
        return cls(content=[MCPToolContent(text=text)], isError=is_error)


class JSONRPCResponse(BaseModel):
    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: RequestId = None
    result: Optional[MCPToolResult] = None
    error: Optional[JSONRPCError] = None

    @model_validator(mode="after")
    def check_consistency(self):
        if self.result is not None and self.error is not None:
            raise ValueError("JSON-RPC response cannot have both result and error.")
        if self.result is None and self.error is None:
            raise ValueError("JSON-RPC response must include result or error.")
        return self

    def to_dict(self) -> Dict[str, Any]:
        # ``id`` is always present on the wire, even when null.
        payload: Dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        else:
            payload["result"] = self.result.model_dump()
        return payload


# --- MCP Lifecycle / Discovery Models ---

class ServerInfo(BaseModel):
    name: str
    version: str
    description: str


class Capabilities(BaseModel):
    tools: Dict[str, Any] = Field(default_factory=dict)


class InitializeResult(BaseModel):
    protocolVersion: str
    capabilities: Capabilities
    serverInfo: ServerInfo


class ToolAnnotations(BaseModel):
    readOnlyHint: bool
    destructiveHint: bool


class ToolDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    arguments_schema: Dict[str, Any]
    response_schema: Dict[str, Any]
    annotations: ToolAnnotations


class ListToolsResult(BaseModel):
    tools: List[ToolDefinition]


class ToolCallParams(BaseModel):
    name: StrictStr
    arguments: Optional[Any] = None


# --- Tool Arguments ---

class ListFilesRequest(BaseModel):
    """list_files takes no arguments."""


class ReadFileRequest(BaseModel):
    name: StrictStr
    start_line: Optional[StrictInt] = None
    end_line: Optional[StrictInt] = None


class EditOperation(BaseModel):
    line: StrictInt
    content: StrictStr = ""
    operation: StrictStr


class EditFileRequest(BaseModel):
    name: StrictStr
    edits: List[EditOperation] = Field(default_factory=list)
    append: StrictStr = ""
    create_if_missing: StrictBool = False


# --- Tool Responses (File Operation Service contract) ---

class FileInfo(BaseModel):
    name: str
    size: int = 0
    modified: str  # RFC3339 UTC
    readable: bool = True
    writable: bool = True
    lines: int  # -1 when unknown


class ListFilesResponse(BaseModel):
    files: List[FileInfo] = Field(default_factory=list)
    directory: str = ""


class ReadFileResponse(BaseModel):
    content: str
    filename: str
    total_lines: int
    start_line: int = 0  # as requested, 0 when omitted
    end_line: int = 0  # as requested, 0 when omitted
    actual_end_line: int = -1  # zero-based index of the last line within content, -1 if none
    is_range_request: bool = False


class EditFileResponse(BaseModel):
    filename: str
    lines_modified: int
    new_total_lines: int
    file_created: bool


# --- REST framing: the argument object is the whole body, unknown members rejected ---

class StrictListFilesRequest(ListFilesRequest):
    model_config = ConfigDict(extra="forbid")


class StrictReadFileRequest(ReadFileRequest):
    model_config = ConfigDict(extra="forbid")


class StrictEditOperation(EditOperation):
    model_config = ConfigDict(extra="forbid")


class StrictEditFileRequest(EditFileRequest):
    model_config = ConfigDict(extra="forbid")

    edits: List[StrictEditOperation] = Field(default_factory=list)
