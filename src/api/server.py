import logging
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from src.config.settings import AppSettings, ServerSettings, get_settings
from src.mcp.processor import SERVER_DESCRIPTION, SERVER_NAME, SERVER_VERSION, ToolProcessor
from src.transport.http import TransportError, router as mcp_router, transport_error_handler
from src.utils import audit

log = logging.getLogger(__name__)


def create_app(
    processor: ToolProcessor,
    server_settings: Optional[ServerSettings] = None,
    app_settings: Optional[AppSettings] = None,
) -> FastAPI:
    """Builds the HTTP application around an already constructed processor."""
    server_settings = server_settings or get_settings().server
    app_settings = app_settings or get_settings().app

    app = FastAPI(
        title=SERVER_NAME,
        description=SERVER_DESCRIPTION,
        version=SERVER_VERSION,
    )
    app.state.processor = processor
    app.state.max_request_size_mb = server_settings.MAX_REQUEST_SIZE_MB
    app.state.working_directory = server_settings.WORKING_DIRECTORY
    app.state.environment = app_settings.ENVIRONMENT

    # --- Middleware ---

    if app_settings.ENVIRONMENT == "development":
        origins = ["*"]
    else:
        origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.middleware("http")
    async def audit_log_middleware(request: Request, call_next):
        correlation_id = str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        start = time.perf_counter()

        log.debug(
            "Incoming request",
            extra={"cid": correlation_id, "method": request.method, "path": request.url.path},
        )

        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        audit.emit(
            {
                "type": "http_request",
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 3),
            }
        )

        response.headers["X-Request-ID"] = correlation_id
        log.debug("Outgoing response", extra={"cid": correlation_id, "status": response.status_code})
        return response

    app.add_exception_handler(TransportError, transport_error_handler)
    app.include_router(mcp_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "environment": app.state.environment,
            "working_directory": app.state.working_directory,
            "transport": "http",
            "tools": list(processor.tool_names),
        }

    return app
