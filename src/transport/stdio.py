"""Newline-delimited JSON-RPC over a pair of text streams.

One line in, one line out, strictly in order. A line that fails to decode is
answered with a parse error and never affects the lines around it.
"""

import json
import logging
from typing import TextIO

from pydantic import ValidationError

from src.mcp.errors import new_parse_error
from src.mcp.processor import ToolProcessor
from src.mcp.protocol import JSONRPCRequest, JSONRPCResponse
from src.transport.common import encode_response, error_response, extract_request_id, run_request

log = logging.getLogger(__name__)


class StdioServer:
    def __init__(self, processor: ToolProcessor):
        if processor is None:
            raise ValueError("StdioServer requires a ToolProcessor.")
        self.processor = processor

    def handle_line(self, line: str) -> JSONRPCResponse:
        try:
            payload = json.loads(line)
        except ValueError as exc:
            log.warning(f"Invalid JSON received on stdio: {exc}")
            return error_response(extract_request_id(line), new_parse_error(f"Invalid JSON: {exc}"))

        try:
            request = JSONRPCRequest.model_validate(payload)
        except ValidationError as exc:
            log.warning(f"Malformed JSON-RPC request on stdio: {exc.error_count()} issue(s)")
            return error_response(
                extract_request_id(payload),
                new_parse_error(f"Request does not match the JSON-RPC envelope: {exc.errors(include_url=False)}"),
            )

        return run_request(self.processor, request)

    def write_response(self, output: TextIO, response: JSONRPCResponse) -> None:
        encoded = encode_response(response)
        try:
            output.write(encoded + "\n")
            output.flush()
        except (OSError, ValueError) as exc:
            # Nothing more can be done for this request; keep serving the stream.
            log.error(f"Error writing JSON-RPC response to output: {exc}")

    def serve(self, input_stream: TextIO, output_stream: TextIO) -> None:
        """Processes requests until ``input_stream`` is exhausted."""
        log.info("Starting stdio JSON-RPC handler.")
        for line in input_stream:
            if not line.strip():
                continue
            self.write_response(output_stream, self.handle_line(line))
        log.info("Stdio JSON-RPC handler finished.")
