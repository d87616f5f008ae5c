from fastapi.testclient import TestClient

from src.api.server import create_app
from src.config.settings import ServerSettings
from src.fileops.local import LocalFileOperationService
from src.mcp.processor import ToolProcessor
from src.utils import audit


def test_audit_middleware_generates_correlation_id(tmp_path):
    events = []
    audit.clear_sinks()
    audit.register_sink(events.append)

    processor = ToolProcessor(LocalFileOperationService(tmp_path))
    client = TestClient(create_app(processor, ServerSettings(WORKING_DIRECTORY=str(tmp_path))))
    response = client.post(
        "/mcp",
        json={"jsonrpc": "2.0", "method": "tools/call", "id": 1, "params": {"name": "list_files"}},
    )

    assert response.status_code == 200
    assert "X-Request-ID" in response.headers
    http_events = [event for event in events if event.get("type") == "http_request"]
    assert http_events[0]["correlation_id"] == response.headers["X-Request-ID"]
    assert http_events[0]["status_code"] == 200
    assert {"type": "tool_execution", "tool": "list_files", "status": "success"} in events

    audit.clear_sinks()
