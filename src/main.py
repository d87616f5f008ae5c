"""Process entry point: settings, logging, file service, then one transport."""

import io
import logging
import sys

from src.config.settings import Settings, get_settings, validate_working_directory
from src.fileops.local import LocalFileOperationService
from src.mcp.processor import ToolProcessor
from src.utils.logging import setup_logging

log = logging.getLogger(__name__)


def build_processor(config: Settings) -> ToolProcessor:
    server = config.server
    working_directory = validate_working_directory(server.WORKING_DIRECTORY)
    service = LocalFileOperationService(
        working_directory,
        max_file_size_mb=server.MAX_FILE_SIZE_MB,
        operation_timeout=float(server.OPERATION_TIMEOUT_SEC),
    )
    return ToolProcessor(service)


def run_stdio(processor: ToolProcessor) -> None:
    from src.transport.stdio import StdioServer

    # Undecodable bytes become U+FFFD so the line still gets a parse error reply.
    stdin = io.TextIOWrapper(sys.stdin.buffer, encoding="utf-8", errors="replace")
    StdioServer(processor).serve(stdin, sys.stdout)


def run_http(processor: ToolProcessor, config: Settings) -> None:
    import uvicorn

    from src.api.server import create_app

    server = config.server
    app = create_app(processor, server, config.app)
    log.info(f"Starting HTTP transport on {server.HOST}:{server.PORT}")
    uvicorn.run(
        app,
        host=server.HOST,
        port=server.PORT,
        timeout_keep_alive=server.HTTP_TIMEOUT_KEEP_ALIVE_SEC,
        log_config=None,
    )


def main() -> int:
    config = get_settings()
    stdio = config.server.TRANSPORT == "stdio"
    setup_logging(sys.stderr if stdio else None)

    try:
        processor = build_processor(config)
    except ValueError as exc:
        log.error(f"Invalid configuration: {exc}")
        return 1

    log.info(
        "File editing server starting",
        extra={"transport": config.server.TRANSPORT, "working_directory": config.server.WORKING_DIRECTORY},
    )
    if stdio:
        run_stdio(processor)
    else:
        run_http(processor, config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
