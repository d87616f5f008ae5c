import io
import json
import logging

import pytest

from src.utils.logging import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def test_records_are_json_lines(restore_root_logger):
    stream = io.StringIO()
    setup_logging(stream=stream, level="DEBUG")

    logging.getLogger("src.test").info("hello", extra={"tool": "read_file"})

    record = json.loads(stream.getvalue().splitlines()[-1])
    assert record["message"] == "hello"
    assert record["level"] == "INFO"
    assert record["name"] == "src.test"
    assert record["tool"] == "read_file"
    assert "timestamp" in record


def test_invalid_level_falls_back_to_info(restore_root_logger):
    setup_logging(stream=io.StringIO(), level="LOUD")
    assert logging.getLogger().level == logging.INFO
