import os

import pytest

from src.fileops.local import LocalFileOperationService, split_lines
from src.fileops.locks import FileLockManager
from src.fileops.service import FileOperationError
from src.mcp import errors
from src.mcp.protocol import EditFileRequest, EditOperation, ListFilesRequest, ReadFileRequest


@pytest.fixture
def service(tmp_path):
    return LocalFileOperationService(tmp_path, max_file_size_mb=1, operation_timeout=0.1)


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_bytes(text.encode("utf-8"))
    return path


def edit(name, *edits, **kwargs):
    return EditFileRequest(
        name=name,
        edits=[EditOperation(line=line, operation=op, content=content) for line, op, content in edits],
        **kwargs,
    )


def error_of(excinfo):
    return excinfo.value.detail


def test_split_lines():
    assert split_lines("") == []
    assert split_lines("a") == ["a"]
    assert split_lines("a\n") == ["a"]
    assert split_lines("a\r\nb\rc\n\n") == ["a", "b", "c", ""]


def test_missing_working_directory(tmp_path):
    with pytest.raises(ValueError):
        LocalFileOperationService(tmp_path / "nope")


# --- list_files ---


def test_list_files_skips_hidden_and_directories(tmp_path, service):
    write(tmp_path, "b.txt", "1\n2\n")
    write(tmp_path, "a.txt", "")
    write(tmp_path, ".hidden", "x")
    (tmp_path / "sub").mkdir()

    response = service.list_files(ListFilesRequest())

    assert [f.name for f in response.files] == ["a.txt", "b.txt"]
    assert [f.lines for f in response.files] == [0, 2]
    assert response.files[0].modified.endswith("Z")


def test_list_files_unknown_line_count_for_binary(tmp_path, service):
    (tmp_path / "blob.bin").write_bytes(b"\xff\xfe\x00")
    assert service.list_files(ListFilesRequest()).files[0].lines == -1


# --- read_file ---


def test_read_whole_file(tmp_path, service):
    write(tmp_path, "a.txt", "one\ntwo\nthree\n")

    response = service.read_file(ReadFileRequest(name="a.txt"))

    assert response.content == "one\ntwo\nthree"
    assert response.total_lines == 3
    assert response.is_range_request is False


def test_read_range_reports_content_relative_end(tmp_path, service):
    write(tmp_path, "a.txt", "1\n2\n3\n4\n5\n")

    response = service.read_file(ReadFileRequest(name="a.txt", start_line=2, end_line=3))

    assert response.content == "2\n3"
    assert response.start_line == 2
    assert response.end_line == 3
    assert response.actual_end_line == 1
    assert response.is_range_request is True


def test_read_range_end_is_clamped(tmp_path, service):
    write(tmp_path, "a.txt", "1\n2\n3\n")

    response = service.read_file(ReadFileRequest(name="a.txt", start_line=2, end_line=50))
    assert response.content == "2\n3"


def test_read_start_past_end_is_rejected(tmp_path, service):
    write(tmp_path, "a.txt", "1\n2\n")

    with pytest.raises(FileOperationError) as excinfo:
        service.read_file(ReadFileRequest(name="a.txt", start_line=5))
    assert error_of(excinfo).code == errors.INVALID_PARAMS


@pytest.mark.parametrize("start, end", [(-1, None), (None, -2), (4, 2)])
def test_read_invalid_line_numbers(tmp_path, service, start, end):
    write(tmp_path, "a.txt", "1\n2\n3\n4\n")

    with pytest.raises(FileOperationError) as excinfo:
        service.read_file(ReadFileRequest(name="a.txt", start_line=start, end_line=end))
    assert error_of(excinfo).code == errors.INVALID_PARAMS


def test_read_missing_file(service):
    with pytest.raises(FileOperationError) as excinfo:
        service.read_file(ReadFileRequest(name="ghost.txt"))

    detail = error_of(excinfo)
    assert detail.code == errors.FILE_SYSTEM_ERROR
    assert detail.data.type == errors.FILE_NOT_FOUND


def test_read_invalid_utf8(tmp_path, service):
    (tmp_path / "latin.txt").write_bytes(b"caf\xe9\n")

    with pytest.raises(FileOperationError) as excinfo:
        service.read_file(ReadFileRequest(name="latin.txt"))
    assert error_of(excinfo).data.type == errors.INVALID_ENCODING


def test_read_file_too_large(tmp_path, service):
    (tmp_path / "big.txt").write_bytes(b"x" * (1024 * 1024 + 1))

    with pytest.raises(FileOperationError) as excinfo:
        service.read_file(ReadFileRequest(name="big.txt"))
    detail = error_of(excinfo)
    assert detail.data.type == errors.FILE_TOO_LARGE
    assert errors.map_error_to_http_status(detail.code, detail) == 413


@pytest.mark.parametrize("name", ["../secret.txt", "a/b.txt", "", "x" * 256, "bad name.txt"])
def test_invalid_names_are_rejected(service, name):
    with pytest.raises(FileOperationError) as excinfo:
        service.read_file(ReadFileRequest(name=name))
    assert error_of(excinfo).code == errors.INVALID_PARAMS


def test_symlink_escape_is_rejected(tmp_path, service):
    outside = tmp_path.parent / f"{tmp_path.name}-outside.txt"
    outside.write_text("secret\n", encoding="utf-8")
    os.symlink(outside, tmp_path / "link.txt")

    with pytest.raises(FileOperationError) as excinfo:
        service.read_file(ReadFileRequest(name="link.txt"))
    assert error_of(excinfo).code == errors.INVALID_PARAMS


# --- edit_file ---


def test_edit_applies_bottom_up(tmp_path, service):
    path = write(tmp_path, "a.txt", "1\n2\n3\n")

    response = service.edit_file(edit(
        "a.txt",
        (1, "insert", "zero"),
        (3, "delete", ""),
        (2, "replace", "TWO"),
    ))

    assert path.read_text(encoding="utf-8") == "zero\n1\nTWO\n"
    assert response.new_total_lines == 3
    assert response.lines_modified == 3
    assert response.file_created is False


def test_edit_operation_is_case_insensitive(tmp_path, service):
    path = write(tmp_path, "a.txt", "1\n")
    service.edit_file(edit("a.txt", (1, "REPLACE", "one")))
    assert path.read_text(encoding="utf-8") == "one\n"


def test_unchanged_replace_is_not_counted(tmp_path, service):
    write(tmp_path, "a.txt", "same\n")
    assert service.edit_file(edit("a.txt", (1, "replace", "same"))).lines_modified == 0


def test_edit_append_and_line_endings(tmp_path, service):
    path = tmp_path / "crlf.txt"
    path.write_bytes(b"a\r\nb\r\n")

    response = service.edit_file(edit("crlf.txt", append="c\nd"))

    assert path.read_bytes() == b"a\r\nb\r\nc\r\nd\r\n"
    assert response.lines_modified == 2
    assert response.new_total_lines == 4


def test_edit_create_if_missing(tmp_path, service):
    response = service.edit_file(edit("new.txt", append="x\ny\nz", create_if_missing=True))

    assert (tmp_path / "new.txt").read_text(encoding="utf-8") == "x\ny\nz"
    assert response.file_created is True
    assert response.lines_modified == 3
    assert response.new_total_lines == 3


def test_edit_missing_without_create(service):
    with pytest.raises(FileOperationError) as excinfo:
        service.edit_file(edit("new.txt", append="x"))
    assert error_of(excinfo).data.type == errors.FILE_NOT_FOUND


@pytest.mark.parametrize(
    "edits",
    [
        [(0, "replace", "x")],
        [(1, "rename", "x")],
        [(1, "delete", "not empty")],
        [(5, "replace", "x")],
        [(5, "insert", "x")],
    ],
)
def test_invalid_edits_leave_file_untouched(tmp_path, service, edits):
    path = write(tmp_path, "a.txt", "1\n2\n")

    with pytest.raises(FileOperationError) as excinfo:
        service.edit_file(edit("a.txt", *edits))

    assert error_of(excinfo).code == errors.INVALID_PARAMS
    assert path.read_text(encoding="utf-8") == "1\n2\n"


def test_insert_at_end_is_allowed(tmp_path, service):
    path = write(tmp_path, "a.txt", "1\n2\n")
    service.edit_file(edit("a.txt", (3, "insert", "3")))
    assert path.read_text(encoding="utf-8") == "1\n2\n3\n"


def test_too_many_edits(tmp_path, service):
    write(tmp_path, "a.txt", "1\n")
    request = edit("a.txt", *[(1, "insert", "x")] * 1001)

    with pytest.raises(FileOperationError) as excinfo:
        service.edit_file(request)
    assert error_of(excinfo).code == errors.INVALID_PARAMS


def test_line_cap_is_enforced(tmp_path):
    service = LocalFileOperationService(tmp_path, max_line_count=3)
    write(tmp_path, "a.txt", "1\n2\n3\n")

    with pytest.raises(FileOperationError) as excinfo:
        service.edit_file(edit("a.txt", append="4"))
    assert error_of(excinfo).code == errors.INVALID_PARAMS


def test_locked_file_reports_lock_failure(tmp_path):
    locks = FileLockManager(timeout=0.05)
    service = LocalFileOperationService(tmp_path, operation_timeout=0.05, lock_manager=locks)
    path = write(tmp_path, "a.txt", "1\n")

    with locks.locked(str(service.resolve_path("a.txt"))):
        with pytest.raises(FileOperationError) as excinfo:
            service.edit_file(edit("a.txt", append="2"))

    detail = error_of(excinfo)
    assert detail.code == errors.OPERATION_LOCK_FAILED
    assert errors.map_error_to_http_status(detail.code, detail) == 409
    assert path.read_text(encoding="utf-8") == "1\n"


def test_no_temp_files_left_behind(tmp_path, service):
    write(tmp_path, "a.txt", "1\n")
    service.edit_file(edit("a.txt", append="2"))
    assert sorted(os.listdir(tmp_path)) == ["a.txt"]
