"""File operation service backed by a single local working directory."""

import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from src.fileops.locks import FileLockManager, LockTimeoutError
from src.fileops.service import FileOperationError, FileOperationService
from src.mcp import errors
from src.mcp.protocol import (
    EditFileRequest,
    EditFileResponse,
    ErrorDetail,
    FileInfo,
    ListFilesRequest,
    ListFilesResponse,
    ReadFileRequest,
    ReadFileResponse,
)

log = logging.getLogger(__name__)

FILENAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")
MAX_FILENAME_LENGTH = 255
DEFAULT_MAX_LINE_COUNT = 100_000
MAX_EDITS_ALLOWED = 1000
EDIT_OPERATIONS = ("replace", "insert", "delete")

_BYTES_PER_MB = 1024 * 1024


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_lines(text: str) -> List[str]:
    """Splits on any newline style; a single trailing newline ends the last line."""
    if not text:
        return []
    lines = normalize_newlines(text).split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def join_lines(lines: List[str]) -> str:
    return "\n".join(lines)


def detect_line_ending(text: str) -> str:
    if "\r\n" in text:
        return "\r\n"
    if "\r" in text:
        return "\r"
    return "\n"


def rfc3339(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _fail(detail: ErrorDetail) -> FileOperationError:
    return FileOperationError(detail)


def _os_error_detail(exc: OSError, filename: str, operation: str) -> ErrorDetail:
    if isinstance(exc, PermissionError):
        return errors.new_permission_denied_error(filename, operation)
    if isinstance(exc, FileNotFoundError):
        return errors.new_file_not_found_error(filename, operation)
    return errors.new_file_system_error(filename, operation, f"{type(exc).__name__}: {exc}")


class LocalFileOperationService(FileOperationService):
    def __init__(
        self,
        working_directory: str | os.PathLike,
        *,
        max_file_size_mb: int = 10,
        operation_timeout: float = 10.0,
        lock_manager: Optional[FileLockManager] = None,
        max_line_count: int = DEFAULT_MAX_LINE_COUNT,
    ):
        root = Path(working_directory).expanduser().resolve()
        if not root.is_dir():
            raise ValueError(f"working directory does not exist or is not a directory: {root}")
        self.root = root
        self.max_file_size_mb = max_file_size_mb
        self.max_file_size = max_file_size_mb * _BYTES_PER_MB
        self.max_line_count = max_line_count
        self.operation_timeout = operation_timeout
        self.locks = lock_manager or FileLockManager(timeout=operation_timeout)

    # --- helpers ---

    def resolve_path(self, filename: str) -> Path:
        if not filename or len(filename) > MAX_FILENAME_LENGTH:
            raise _fail(errors.new_invalid_params_error(
                f"Filename length must be between 1 and {MAX_FILENAME_LENGTH} characters.",
                {"filename": filename, "length": len(filename)},
                filename, "path_resolution",
            ))
        if not FILENAME_PATTERN.match(filename):
            raise _fail(errors.new_invalid_params_error(
                "Filename contains invalid characters.", {"filename": filename}, filename, "path_resolution",
            ))

        path = self.root / filename
        resolved = path.resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise _fail(errors.new_invalid_params_error(
                "Path traversal attempt detected.", {"filename": filename}, filename, "path_resolution",
            ))
        if resolved == self.root:
            raise _fail(errors.new_invalid_params_error(
                f"Path '{filename}' is a directory, not a file.", {"filename": filename}, filename, "path_resolution",
            ))
        return path

    def _load_text(self, path: Path, filename: str, operation: str) -> str:
        """Reads a regular file as UTF-8, enforcing the size limit."""
        try:
            stats = path.stat()
        except OSError as exc:
            raise _fail(_os_error_detail(exc, filename, operation))
        if path.is_dir():
            raise _fail(errors.new_invalid_params_error(
                f"Path '{filename}' is a directory, not a file.", {"filename": filename}, filename, operation,
            ))
        if stats.st_size > self.max_file_size:
            raise _fail(errors.new_file_too_large_error(filename, operation, stats.st_size, self.max_file_size_mb))

        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise _fail(_os_error_detail(exc, filename, operation))
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise _fail(errors.new_invalid_encoding_error(filename, operation, "File content is not valid UTF-8"))

    def _check_line_cap(self, count: int, filename: str, operation: str, message: str) -> None:
        if count > self.max_line_count:
            raise _fail(errors.new_invalid_params_error(
                message,
                {"filename": filename, "line_count": count, "max_line_count": self.max_line_count},
                filename, operation,
            ))

    def _write_atomic(self, path: Path, content: str, filename: str) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(content)
            os.replace(tmp_name, path)
            os.chmod(path, 0o644)
        except OSError as exc:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise _fail(_os_error_detail(exc, filename, "write_atomic"))

    # --- operations ---

    def list_files(self, request: ListFilesRequest) -> ListFilesResponse:
        try:
            entries = sorted(os.scandir(self.root), key=lambda entry: entry.name)
        except OSError as exc:
            raise _fail(_os_error_detail(exc, str(self.root), "list_dir"))

        files: List[FileInfo] = []
        for entry in entries:
            if entry.name.startswith("."):
                continue
            try:
                if not entry.is_file():
                    continue
                stats = entry.stat()
            except OSError as exc:
                log.warning(f"Skipping {entry.name} while listing: {exc}")
                continue

            files.append(FileInfo(
                name=entry.name,
                size=stats.st_size,
                modified=rfc3339(stats.st_mtime),
                readable=os.access(entry.path, os.R_OK),
                writable=os.access(entry.path, os.W_OK),
                lines=self._count_lines(Path(entry.path), stats.st_size),
            ))

        return ListFilesResponse(files=files, directory=str(self.root))

    def _count_lines(self, path: Path, size: int) -> int:
        if size == 0:
            return 0
        if size > self.max_file_size:
            return -1
        try:
            count = len(split_lines(path.read_bytes().decode("utf-8")))
        except (OSError, UnicodeDecodeError):
            return -1
        return -1 if count > self.max_line_count else count

    def read_file(self, request: ReadFileRequest) -> ReadFileResponse:
        filename = request.name
        start = request.start_line or 0
        end = request.end_line or 0
        is_range = start != 0 or end != 0

        path = self.resolve_path(filename)

        if start < 0 or end < 0:
            raise _fail(errors.new_invalid_params_error(
                "Line numbers must be 1 or greater if specified.",
                {"start_line": start, "end_line": end}, filename, "read_validation",
            ))
        if start > 0 and end > 0 and start > end:
            raise _fail(errors.new_invalid_params_error(
                "start_line cannot be greater than end_line.",
                {"start_line": start, "end_line": end}, filename, "read_validation",
            ))

        lines = split_lines(self._load_text(path, filename, "read"))
        total = len(lines)
        self._check_line_cap(total, filename, "read_validation", f"File exceeds maximum line count of {self.max_line_count}.")

        effective_start = start or 1
        effective_end = end or total

        if total == 0:
            if is_range and (effective_start > 1 or effective_end > 0):
                raise _fail(errors.new_invalid_params_error(
                    f"start_line {start} is invalid for an empty file.",
                    {"filename": filename, "start_line": start, "total_lines": total},
                    filename, "read_validation",
                ))
            selected: List[str] = []
            actual_end = -1
        else:
            if effective_start > total:
                raise _fail(errors.new_invalid_params_error(
                    f"start_line {effective_start} is greater than total lines {total}.",
                    {"filename": filename, "start_line": effective_start, "total_lines": total},
                    filename, "read_validation",
                ))
            effective_end = min(effective_end, total)
            selected = lines[effective_start - 1:effective_end]
            actual_end = len(selected) - 1

        return ReadFileResponse(
            content=join_lines(selected),
            filename=filename,
            total_lines=total,
            start_line=start,
            end_line=end,
            actual_end_line=actual_end,
            is_range_request=is_range,
        )

    def _validate_edits(self, request: EditFileRequest) -> List[Tuple[int, str, str]]:
        filename = request.name
        if len(request.edits) > MAX_EDITS_ALLOWED:
            raise _fail(errors.new_invalid_params_error(
                f"Number of edits exceeds maximum allowed of {MAX_EDITS_ALLOWED}.",
                {"num_edits": len(request.edits), "max_edits": MAX_EDITS_ALLOWED},
                filename, "edit_validation",
            ))

        edits = []
        for index, edit in enumerate(request.edits):
            number = index + 1
            if edit.line < 1:
                raise _fail(errors.new_invalid_params_error(
                    f"Edit operation #{number}: line number must be 1 or greater.",
                    {"edit_index": index, "line": edit.line}, filename, "edit_validation",
                ))
            operation = edit.operation.lower()
            if operation not in EDIT_OPERATIONS:
                raise _fail(errors.new_invalid_params_error(
                    f"Edit operation #{number}: invalid operation '{edit.operation}'. Must be 'replace', 'insert', or 'delete'.",
                    {"edit_index": index, "operation": edit.operation}, filename, "edit_validation",
                ))
            if operation == "delete" and edit.content:
                raise _fail(errors.new_invalid_params_error(
                    f"Edit operation #{number} ('delete'): content must be empty.",
                    {"edit_index": index}, filename, "edit_validation",
                ))
            edits.append((edit.line, operation, edit.content))
        return edits

    def edit_file(self, request: EditFileRequest) -> EditFileResponse:
        filename = request.name
        path = self.resolve_path(filename)
        edits = self._validate_edits(request)

        try:
            with self.locks.locked(str(path), self.operation_timeout):
                return self._apply_edits(path, filename, request, edits)
        except LockTimeoutError as exc:
            raise _fail(errors.new_lock_failed_error(filename, "edit", str(exc)))

    def _apply_edits(
        self, path: Path, filename: str, request: EditFileRequest, edits: List[Tuple[int, str, str]]
    ) -> EditFileResponse:
        if path.exists():
            original = self._load_text(path, filename, "read_for_edit")
            newline = detect_line_ending(original)
            trailing_newline = original.endswith(("\n", "\r"))
            lines = split_lines(original)
            created = False
            self._check_line_cap(
                len(lines), filename, "edit_validation",
                f"File exceeds maximum line count of {self.max_line_count} before edits.",
            )
        elif request.create_if_missing:
            newline, trailing_newline, lines, created = "\n", False, [], True
        else:
            raise _fail(errors.new_file_not_found_error(filename, "edit"))

        original_count = len(lines)
        modified = 0

        # Bottom-up so earlier line numbers stay valid; ties keep request order.
        for line, operation, content in sorted(edits, key=lambda edit: edit[0], reverse=True):
            index = line - 1
            count = len(lines)
            if operation == "replace":
                if index >= count:
                    raise _fail(errors.new_invalid_params_error(
                        f"Edit 'replace': line {line} is out of range (1-{count}).",
                        {"filename": filename, "line": line, "total_lines": count}, filename, "edit_validation",
                    ))
                if lines[index] != content:
                    lines[index] = content
                    modified += 1
            elif operation == "insert":
                if index > count:
                    raise _fail(errors.new_invalid_params_error(
                        f"Edit 'insert': line {line} is out of range (1 to {count + 1}).",
                        {"filename": filename, "line": line, "total_lines": count}, filename, "edit_validation",
                    ))
                lines.insert(index, content)
                modified += 1
            else:
                if index >= count:
                    raise _fail(errors.new_invalid_params_error(
                        f"Edit 'delete': line {line} is out of range (1-{count}).",
                        {"filename": filename, "line": line, "total_lines": count}, filename, "edit_validation",
                    ))
                del lines[index]
                modified += 1

        if request.append:
            appended = split_lines(request.append)
            lines.extend(appended)
            modified += len(appended)

        new_total = len(lines)
        self._check_line_cap(
            new_total, filename, "edit_validation",
            f"Edit results in file exceeding maximum line count of {self.max_line_count} (new count: {new_total}).",
        )

        content = join_lines(lines)
        if trailing_newline and lines:
            content += "\n"
        if newline != "\n":
            content = content.replace("\n", newline)

        size = len(content.encode("utf-8"))
        if size > self.max_file_size:
            raise _fail(errors.new_file_too_large_error(filename, "edit_write", size, self.max_file_size_mb))

        self._write_atomic(path, content, filename)
        log.info(
            "File edited",
            extra={"file": filename, "file_created": created, "lines_before": original_count, "lines_after": new_total},
        )

        return EditFileResponse(
            filename=filename,
            lines_modified=new_total if created else modified,
            new_total_lines=new_total,
            file_created=created,
        )
