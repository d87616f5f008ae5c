import abc
from typing import Optional

from src.mcp.protocol import (
    EditFileRequest,
    EditFileResponse,
    ErrorDetail,
    ListFilesRequest,
    ListFilesResponse,
    ReadFileRequest,
    ReadFileResponse,
)


class FileOperationError(Exception):
    """Raised by a file operation service; carries the wire-facing detail."""

    def __init__(self, detail: Optional[ErrorDetail]):
        self.detail = detail
        super().__init__(detail.message if detail is not None else "unknown file operation error")


class FileOperationService(abc.ABC):
    """Capability the tool processor dispatches to.

    Implementations own filesystem access, path containment, line editing and
    locking, and report business failures by raising FileOperationError.
    """

    @abc.abstractmethod
    def list_files(self, request: ListFilesRequest) -> ListFilesResponse:
        ...

    @abc.abstractmethod
    def read_file(self, request: ReadFileRequest) -> ReadFileResponse:
        ...

    @abc.abstractmethod
    def edit_file(self, request: EditFileRequest) -> EditFileResponse:
        ...
