"""Error catalog.

Single place where internal failure conditions become wire-visible errors.
Every constructor returns an :class:`ErrorDetail` whose ``data`` is one of the
tagged :class:`ErrorData` variants below. The variants know how to project
themselves onto the narrow JSON-RPC ``error.data`` shape, and the file system
variants carry the HTTP status their ``type`` implies, so callers never have
to poke around in a loose dictionary.

All functions here are pure: errors are returned, never raised.
"""

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.mcp.protocol import ErrorDetail, ErrorResponse, JSONRPCError, JSONRPCErrorData

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Application errors (JSON-RPC server-error range)
FILE_SYSTEM_ERROR = -32001
OPERATION_LOCK_FAILED = -32002

# Discriminators carried in ``data.type`` for FILE_SYSTEM_ERROR
FILE_NOT_FOUND = "file_not_found"
PERMISSION_DENIED = "permission_denied"
FILE_TOO_LARGE = "file_too_large"
INVALID_ENCODING = "invalid_encoding"

_STANDARD_HTTP_STATUS = {
    PARSE_ERROR: 400,
    INVALID_REQUEST: 400,
    METHOD_NOT_FOUND: 404,
    INVALID_PARAMS: 400,
    INTERNAL_ERROR: 500,
    OPERATION_LOCK_FAILED: 409,
}

_FILE_SYSTEM_HTTP_STATUS = {
    FILE_NOT_FOUND: 404,
    PERMISSION_DENIED: 403,
    INVALID_ENCODING: 400,
    FILE_TOO_LARGE: 413,
}


def utc_timestamp() -> str:
    """Current time as an RFC3339 UTC string with a ``Z`` suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_param_issues(param_issues: Any) -> str:
    try:
        return json.dumps(param_issues, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(param_issues)


def join_details(details: Optional[str], param_issues: Any) -> Optional[str]:
    if param_issues is None:
        return details
    issues = format_param_issues(param_issues)
    if details:
        return f"{details}. Parameter issues: {issues}"
    return f"Parameter issues: {issues}"


# --- Tagged error payloads ---


class ErrorData(BaseModel):
    """Generic payload: free-form details plus optional file context."""

    model_config = ConfigDict(frozen=True)

    filename: Optional[str] = None
    operation: Optional[str] = None
    details: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)

    def summary(self) -> Optional[str]:
        return self.details

    def to_jsonrpc_data(self) -> JSONRPCErrorData:
        return JSONRPCErrorData(
            filename=self.filename or None,
            operation=self.operation or None,
            timestamp=self.timestamp,
            details=self.summary() or None,
        )


class MethodNotFoundData(ErrorData):
    method: str


class InvalidParamsData(ErrorData):
    param_issues: Optional[Dict[str, Any]] = None

    def summary(self) -> Optional[str]:
        return join_details(self.details, self.param_issues)


class FileSystemErrorData(ErrorData):
    http_status: ClassVar[Optional[int]] = None

    # Untyped file system failures carry no discriminator and map to 500.
    type: Optional[str] = None


class FileNotFoundData(FileSystemErrorData):
    http_status: ClassVar[Optional[int]] = 404

    type: Literal["file_not_found"] = FILE_NOT_FOUND


class PermissionDeniedData(FileSystemErrorData):
    http_status: ClassVar[Optional[int]] = 403

    type: Literal["permission_denied"] = PERMISSION_DENIED


class FileTooLargeData(FileSystemErrorData):
    http_status: ClassVar[Optional[int]] = 413

    type: Literal["file_too_large"] = FILE_TOO_LARGE
    current_size: Optional[int] = None
    max_size_mb: int


class InvalidEncodingData(FileSystemErrorData):
    http_status: ClassVar[Optional[int]] = 400

    type: Literal["invalid_encoding"] = INVALID_ENCODING


class LockFailedData(ErrorData):
    """Lock contention; the -32002 code alone determines the HTTP status."""


# --- Constructors ---


def new_error_detail(code: int, message: str, data: Any = None) -> ErrorDetail:
    return ErrorDetail(code=code, message=message, data=data)


def new_parse_error(details: str) -> ErrorDetail:
    return new_error_detail(PARSE_ERROR, "Parse error", ErrorData(details=details))


def new_invalid_request_error(details: str) -> ErrorDetail:
    return new_error_detail(INVALID_REQUEST, "Invalid Request", ErrorData(details=details))


def new_method_not_found_error(method: str) -> ErrorDetail:
    return new_error_detail(
        METHOD_NOT_FOUND,
        f"Method not found: {method}",
        MethodNotFoundData(method=method, details=f"Method '{method}' is not supported."),
    )


def new_invalid_params_error(
    message: str = "",
    param_issues: Optional[Dict[str, Any]] = None,
    filename: Optional[str] = None,
    operation: Optional[str] = None,
) -> ErrorDetail:
    final_message = message or "Invalid params"
    data = InvalidParamsData(
        details=message if param_issues is not None else final_message,
        param_issues=param_issues,
        filename=filename,
        operation=operation,
    )
    return new_error_detail(INVALID_PARAMS, final_message, data)


def new_internal_error(details: str) -> ErrorDetail:
    return new_error_detail(INTERNAL_ERROR, "Internal error", ErrorData(details=details))


def new_file_system_error(filename: str, operation: str, details: str) -> ErrorDetail:
    return new_error_detail(
        FILE_SYSTEM_ERROR,
        "File system error",
        FileSystemErrorData(filename=filename, operation=operation, details=details),
    )


def new_file_not_found_error(filename: str, operation: str) -> ErrorDetail:
    return new_error_detail(
        FILE_SYSTEM_ERROR,
        f"File '{filename}' not found",
        FileNotFoundData(filename=filename, operation=operation),
    )


def new_permission_denied_error(filename: str, operation: str) -> ErrorDetail:
    return new_error_detail(
        FILE_SYSTEM_ERROR,
        f"Permission denied for file '{filename}'",
        PermissionDeniedData(filename=filename, operation=operation),
    )


def new_file_too_large_error(
    filename: str, operation: str, current_size: Optional[int], max_size_mb: int
) -> ErrorDetail:
    details = f"File size {current_size} bytes exceeds the limit of {max_size_mb} MB" if current_size is not None else None
    return new_error_detail(
        FILE_SYSTEM_ERROR,
        f"File '{filename}' exceeds maximum allowed size of {max_size_mb} MB",
        FileTooLargeData(
            filename=filename,
            operation=operation,
            current_size=current_size,
            max_size_mb=max_size_mb,
            details=details,
        ),
    )


def new_invalid_encoding_error(filename: str, operation: str, details: str) -> ErrorDetail:
    return new_error_detail(
        FILE_SYSTEM_ERROR,
        f"File '{filename}' is not valid UTF-8",
        InvalidEncodingData(filename=filename, operation=operation, details=details),
    )


def new_lock_failed_error(filename: str, operation: str, details: str) -> ErrorDetail:
    return new_error_detail(
        OPERATION_LOCK_FAILED,
        f"Could not acquire lock for operation '{operation}' on file '{filename}'",
        LockFailedData(filename=filename, operation=operation, details=details),
    )


# --- Wire conversions ---


def to_error_response(detail: Optional[ErrorDetail]) -> Optional[ErrorResponse]:
    """Wraps a detail as the ``{"error": ...}`` body used for HTTP failures."""
    if detail is None:
        return None
    return ErrorResponse(error=detail)


def _project_mapping(data: Mapping) -> JSONRPCErrorData:
    def _text(key: str) -> Optional[str]:
        value = data.get(key)
        if value is None or value == "":
            return None
        return value if isinstance(value, str) else str(value)

    details = data.get("details")
    details = None if details is None else str(details)
    return JSONRPCErrorData(
        filename=_text("filename"),
        operation=_text("operation"),
        timestamp=_text("timestamp") or utc_timestamp(),
        details=join_details(details, data.get("param_issues")) or None,
    )


def to_jsonrpc_error(detail: Optional[ErrorDetail]) -> Optional[JSONRPCError]:
    """Projects a detail onto the JSON-RPC error object.

    ``data`` is narrowed to filename/operation/timestamp/details; structured
    parameter issues are folded into ``details``. Payloads that are neither a
    tagged variant nor a mapping are stringified into ``details``.
    """
    if detail is None:
        return None

    data = detail.data
    if data is None:
        rpc_data = None
    elif isinstance(data, ErrorData):
        rpc_data = data.to_jsonrpc_data()
    elif isinstance(data, Mapping):
        rpc_data = _project_mapping(data)
    else:
        rpc_data = JSONRPCErrorData(details=str(data), timestamp=utc_timestamp())

    return JSONRPCError(code=detail.code, message=detail.message, data=rpc_data)


def _file_system_status(detail: Optional[ErrorDetail]) -> int:
    if detail is None:
        return 500
    data = detail.data
    if isinstance(data, FileSystemErrorData):
        return data.http_status or 500
    if isinstance(data, ErrorData):
        return 500
    if isinstance(data, Mapping):
        return _FILE_SYSTEM_HTTP_STATUS.get(data.get("type"), 500)
    return 500


def map_error_to_http_status(code: int, detail: Optional[ErrorDetail] = None) -> int:
    """HTTP status implied by an error code.

    FILE_SYSTEM_ERROR is overloaded and resolved through ``detail.data``'s
    type. Anything unrecognised is a 500.
    """
    if code == FILE_SYSTEM_ERROR:
        return _file_system_status(detail)
    return _STANDARD_HTTP_STATUS.get(code, 500)
