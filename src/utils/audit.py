"""Audit trail for tool executions and HTTP requests.

Events are plain dictionaries. Tests and embedding applications register a
sink to capture them; otherwise they are written to the structured log.
"""

import logging
import threading
from typing import Any, Callable, Dict, List

log = logging.getLogger(__name__)

AuditEvent = Dict[str, Any]
AuditSink = Callable[[AuditEvent], None]

_sinks: List[AuditSink] = []
_sinks_lock = threading.Lock()


def register_sink(sink: AuditSink) -> None:
    with _sinks_lock:
        if sink not in _sinks:
            _sinks.append(sink)


def clear_sinks() -> None:
    with _sinks_lock:
        _sinks.clear()


def emit(event: AuditEvent) -> None:
    with _sinks_lock:
        sinks = list(_sinks)

    if not sinks:
        log.info("AUDIT_EVENT", extra={"event": event})
        return

    for sink in sinks:
        try:
            sink(event)
        except Exception as exc:  # pragma: no cover - a broken sink must not fail the request
            log.error("Audit sink %s failed: %s", sink, exc)


def tool_execution(tool: str, status: str, **fields: Any) -> None:
    """Records the outcome of a single ``tools/call`` dispatch."""
    event: AuditEvent = {"type": "tool_execution", "tool": tool, "status": status}
    event.update(fields)
    emit(event)
