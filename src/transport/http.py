import json
import logging
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from src.mcp.errors import (
    new_invalid_request_error,
    new_parse_error,
    to_error_response,
)
from src.mcp.processor import ToolProcessor, validation_issues
from src.mcp.protocol import (
    ErrorDetail,
    StrictEditFileRequest,
    StrictJSONRPCRequest,
    StrictListFilesRequest,
    StrictReadFileRequest,
)
from src.transport.common import run_request

log = logging.getLogger(__name__)

router = APIRouter()

# Every verb is routed here so that non-POST requests get a JSON error body.
ROUTED_METHODS = ["POST", "GET", "PUT", "PATCH", "DELETE"]

_BYTES_PER_MB = 1024 * 1024


class TransportError(Exception):
    """HTTP framing failure (method, content type, size, undecodable body)."""

    def __init__(self, status_code: int, detail: ErrorDetail):
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail.message)


async def transport_error_handler(request: Request, exc: TransportError) -> JSONResponse:
    log.warning(
        "HTTP transport rejected request",
        extra={"path": request.url.path, "status": exc.status_code, "reason": exc.detail.message},
    )
    return JSONResponse(status_code=exc.status_code, content=to_error_response(exc.detail).to_dict())


def _processor(request: Request) -> ToolProcessor:
    return request.app.state.processor


def _max_request_bytes(request: Request) -> int:
    return int(request.app.state.max_request_size_mb) * _BYTES_PER_MB


def is_json_content_type(header: str | None) -> bool:
    """Accepts ``application/json`` with at most a charset parameter."""
    if not header:
        return False
    media_type, _, params = header.partition(";")
    if media_type.strip().lower() != "application/json":
        return False
    params = params.strip()
    if not params:
        return True
    key, _, _ = params.partition("=")
    return key.strip().lower() == "charset"


async def read_limited_body(request: Request, limit: int) -> bytes:
    """Reads the body, aborting as soon as it grows past ``limit`` bytes."""
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        raise TransportError(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, new_invalid_request_error("Request body too large"))

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise TransportError(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, new_invalid_request_error("Request body too large"))
    return bytes(body)


async def read_json_body(request: Request, allow_empty: bool = False) -> Any:
    if request.method != "POST":
        raise TransportError(status.HTTP_405_METHOD_NOT_ALLOWED, new_invalid_request_error("Method not allowed; use POST"))

    if not is_json_content_type(request.headers.get("content-type")):
        raise TransportError(
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            new_invalid_request_error("Invalid Content-Type header. Must be 'application/json'."),
        )

    body = await read_limited_body(request, _max_request_bytes(request))
    if allow_empty and not body.strip():
        return {}

    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise TransportError(status.HTTP_400_BAD_REQUEST, new_parse_error(f"Invalid JSON at offset {e.pos}"))
    except ValueError:
        raise TransportError(status.HTTP_400_BAD_REQUEST, new_parse_error("Failed to decode request body"))


@router.api_route("/mcp", methods=ROUTED_METHODS)
async def mcp_endpoint(request: Request):
    """
    Single JSON-RPC request per POST. Protocol and tool errors travel inside a
    200 response; only framing problems produce a 4xx.
    """
    payload = await read_json_body(request)

    try:
        rpc_request = StrictJSONRPCRequest.model_validate(payload)
    except ValidationError as e:
        log.warning(f"Invalid JSON-RPC Request structure: {e.error_count()} issue(s)")
        raise TransportError(
            status.HTTP_400_BAD_REQUEST,
            new_parse_error(f"Failed to decode request body: {validation_issues(e)}"),
        )

    response = await run_in_threadpool(run_request, _processor(request), rpc_request)
    return JSONResponse(status_code=status.HTTP_200_OK, content=response.to_dict())


# --- REST-style framing: the tool's own argument object is the whole body,
# decoded with the same strictness as the /mcp envelope ---


async def _run_tool(request: Request, tool_name: str, arguments_model: type[BaseModel]) -> JSONResponse:
    payload = await read_json_body(request, allow_empty=True)
    if payload is None:
        payload = {}

    try:
        arguments = arguments_model.model_validate(payload)
    except ValidationError as e:
        log.warning(f"Invalid {tool_name} request body: {e.error_count()} issue(s)")
        raise TransportError(
            status.HTTP_400_BAD_REQUEST,
            new_parse_error(f"Failed to decode {tool_name} request body: {validation_issues(e)}"),
        )

    result = await run_in_threadpool(_processor(request).execute_tool, tool_name, arguments)
    return JSONResponse(status_code=status.HTTP_200_OK, content=result.model_dump())


@router.api_route("/list_files", methods=ROUTED_METHODS)
async def list_files_endpoint(request: Request):
    return await _run_tool(request, "list_files", StrictListFilesRequest)


@router.api_route("/read_file", methods=ROUTED_METHODS)
async def read_file_endpoint(request: Request):
    return await _run_tool(request, "read_file", StrictReadFileRequest)


@router.api_route("/edit_file", methods=ROUTED_METHODS)
async def edit_file_endpoint(request: Request):
    return await _run_tool(request, "edit_file", StrictEditFileRequest)
