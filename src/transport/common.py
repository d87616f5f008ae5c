"""Envelope checks and response assembly shared by the stdio and HTTP transports."""

import json
import logging
from typing import Any, Optional

from src.mcp.errors import (
    new_internal_error,
    new_invalid_request_error,
    to_jsonrpc_error,
)
from src.mcp.processor import ToolProcessor
from src.mcp.protocol import (
    JSONRPC_VERSION,
    ErrorDetail,
    JSONRPCError,
    JSONRPCRequest,
    JSONRPCResponse,
    MCPToolResult,
    RequestId,
)

log = logging.getLogger(__name__)


def coerce_request_id(value: Any) -> RequestId:
    """Returns ``value`` if it is usable as a JSON-RPC id, otherwise None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, (str, int, float)):
        return value
    return None


def extract_request_id(raw: Any) -> RequestId:
    """Best-effort id recovery from a request that failed to decode."""
    payload = raw
    if isinstance(raw, (bytes, bytearray, str)):
        try:
            payload = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            return None
    if isinstance(payload, dict):
        return coerce_request_id(payload.get("id"))
    return None


def validate_envelope(request: JSONRPCRequest) -> Optional[ErrorDetail]:
    if request.jsonrpc != JSONRPC_VERSION:
        return new_invalid_request_error("Invalid JSON-RPC version. Must be '2.0'.")
    if not request.method:
        return new_invalid_request_error("Method not specified.")
    return None


def error_response(request_id: RequestId, detail: ErrorDetail) -> JSONRPCResponse:
    return JSONRPCResponse(id=request_id, error=to_jsonrpc_error(detail))


def build_response(
    request_id: RequestId,
    result: Optional[MCPToolResult],
    error: Optional[JSONRPCError],
) -> JSONRPCResponse:
    if error is not None:
        return JSONRPCResponse(id=request_id, error=error)
    return JSONRPCResponse(id=request_id, result=result)


def run_request(processor: ToolProcessor, request: JSONRPCRequest) -> JSONRPCResponse:
    """Validates the envelope and runs the processor; never raises."""
    envelope_error = validate_envelope(request)
    if envelope_error is not None:
        return error_response(request.id, envelope_error)

    try:
        result, error = processor.process_request(request)
        return build_response(request.id, result, error)
    except Exception:
        log.exception("Unhandled error while processing request", extra={"method": request.method})
        return error_response(request.id, new_internal_error("Unhandled server error while processing request."))


def encode_response(response: JSONRPCResponse) -> str:
    """Serializes a response, falling back to a minimal internal error."""
    try:
        return json.dumps(response.to_dict(), ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        log.error(f"Error marshaling JSON-RPC response: {exc}. Original ID: {response.id!r}")
        fallback = error_response(
            coerce_request_id(response.id),
            new_internal_error("Server error: failed to marshal response."),
        )
        return json.dumps(fallback.to_dict(), separators=(",", ":"))
