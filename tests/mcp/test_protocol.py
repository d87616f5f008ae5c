import pytest
from pydantic import ValidationError

from src.mcp.protocol import (
    JSONRPCError,
    JSONRPCErrorData,
    JSONRPCRequest,
    JSONRPCResponse,
    MCPToolResult,
    StrictJSONRPCRequest,
)


def test_jsonrpc_request_rejects_boolean_id():
    with pytest.raises(ValueError):
        JSONRPCRequest(jsonrpc="2.0", method="initialize", id=True)


def test_jsonrpc_request_converts_integral_float_id():
    request = JSONRPCRequest(jsonrpc="2.0", method="initialize", id=2.0)
    assert request.id == 2


def test_jsonrpc_request_keeps_string_and_null_ids():
    assert JSONRPCRequest(method="initialize", id="abc").id == "abc"
    assert JSONRPCRequest(method="initialize").id is None


def test_params_are_left_undecoded():
    request = JSONRPCRequest.model_validate(
        {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "read_file", "arguments": [1, 2]}}
    )
    assert request.params == {"name": "read_file", "arguments": [1, 2]}


def test_strict_request_rejects_unknown_members():
    with pytest.raises(ValidationError):
        StrictJSONRPCRequest.model_validate({"jsonrpc": "2.0", "id": 1, "method": "initialize", "extra": True})


def test_jsonrpc_response_requires_exactly_one_of_result_or_error():
    with pytest.raises(ValidationError):
        JSONRPCResponse(id=1)

    with pytest.raises(ValidationError):
        JSONRPCResponse(
            id=1,
            result=MCPToolResult.text("ok"),
            error=JSONRPCError(code=-32603, message="Internal error"),
        )


def test_jsonrpc_response_always_carries_id():
    response = JSONRPCResponse(id=None, error=JSONRPCError(code=-32700, message="Parse error"))
    assert response.to_dict() == {
        "jsonrpc": "2.0",
        "id": None,
        "error": {"code": -32700, "message": "Parse error"},
    }


def test_error_data_omits_missing_fields():
    error = JSONRPCError(code=-32001, message="x", data=JSONRPCErrorData(filename="a.txt", timestamp="t"))
    assert error.to_dict()["data"] == {"filename": "a.txt", "timestamp": "t"}


def test_tool_result_content_is_never_empty():
    with pytest.raises(ValidationError):
        MCPToolResult(content=[])

    result = MCPToolResult.text("Error: nope", is_error=True)
    assert result.model_dump() == {"content": [{"type": "text", "text": "Error: nope"}], "isError": True}
