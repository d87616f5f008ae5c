import logging
import sys
from typing import Optional, TextIO

from pythonjsonlogger import jsonlogger
from src.config.settings import settings

# Server loggers that otherwise install their own plain-text handlers.
_PROPAGATED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(stream: Optional[TextIO] = None, level: Optional[str] = None):
    """Configures structured JSON logging on the root logger.

    The stdio transport owns stdout for protocol traffic, so it passes
    ``sys.stderr`` here.
    """
    logger = logging.getLogger()

    try:
        logger.setLevel(level or settings.app.LOG_LEVEL)
    except ValueError:
        logger.setLevel(logging.INFO)

    if logger.handlers:
        logger.handlers = []

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(jsonlogger.JsonFormatter(
        fmt='%(asctime)s %(levelname)s %(name)s %(message)s',
        rename_fields={'asctime': 'timestamp', 'levelname': 'level'}
    ))
    logger.addHandler(handler)

    for name in _PROPAGATED_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = []
        server_logger.propagate = True
