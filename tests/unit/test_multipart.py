"""
Unit tests for the multipart/form-data parser.
"""

import io
import os
import tempfile

import pytest

from conftest import BOUNDARY, multipart_body
from dirserve.http.multipart import (
    TEMP_PREFIX,
    MultipartError,
    base_name,
    parse_multipart,
    parse_options_header,
)


CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


@pytest.fixture
def temp_dir(tmp_path, monkeypatch):
    """Route the parser's temporary files into a directory we can inspect."""
    spill = tmp_path / "spill"
    spill.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(spill))
    return spill


def parse(body: bytes, max_memory: int = 1024, content_type: str = CONTENT_TYPE):
    return parse_multipart(io.BufferedReader(io.BytesIO(body)), content_type, max_memory)


class TestParseOptionsHeader:

    def test_quoted_values(self):
        main, options = parse_options_header('form-data; name="file"; filename="a b.txt"')
        assert main == "form-data"
        assert options == {"name": "file", "filename": "a b.txt"}

    def test_escaped_quote(self):
        _, options = parse_options_header(r'form-data; filename="say \"hi\".txt"')
        assert options["filename"] == 'say "hi".txt'

    def test_extended_parameter(self):
        _, options = parse_options_header("form-data; filename*=UTF-8''r%C3%A9sum%C3%A9.pdf")
        assert options["filename"] == "résumé.pdf"

    def test_boundary(self):
        main, options = parse_options_header("Multipart/Form-Data; boundary=abc123")
        assert main == "multipart/form-data"
        assert options["boundary"] == "abc123"


class TestBaseName:

    @pytest.mark.parametrize("filename, expected", [
        ("report.txt", "report.txt"),
        ("/home/alice/report.txt", "report.txt"),
        ("../../etc/passwd", "passwd"),
        ("dir/", "dir"),
    ])
    def test_final_element(self, filename, expected):
        assert base_name(filename) == expected


class TestParseMultipart:
    """Tests for parse_multipart()."""

    def test_file_and_value(self):
        form = parse(multipart_body(fields={"note": "hi"}, files={"file": ("report.txt", b"hello")}))

        part = form.file("file")
        assert part.filename == "report.txt"
        assert part.size == 5
        assert part.in_memory
        with part.open() as f:
            assert f.read() == b"hello"
        assert form.value("note") == "hi"

    def test_content_with_crlf_and_dashes(self):
        content = b"line one\r\n--not-a-boundary\r\n\r\nlast line\r\n"
        form = parse(multipart_body(files={"file": ("a.bin", content)}))
        with form.file("file").open() as f:
            assert f.read() == content

    def test_large_file_spills_to_disk(self, temp_dir):
        content = os.urandom(10_000)
        form = parse(multipart_body(files={"file": ("big.bin", content)}), max_memory=1024)

        part = form.file("file")
        assert not part.in_memory
        assert os.path.basename(part.temp_path).startswith(TEMP_PREFIX)
        with part.open() as f:
            assert f.read() == content

        form.remove_all()
        assert list(temp_dir.iterdir()) == []

    def test_zero_memory_always_spills(self, temp_dir):
        form = parse(multipart_body(files={"file": ("a.txt", b"x")}), max_memory=0)
        assert not form.file("file").in_memory
        form.remove_all()

    def test_filename_reduced_to_base_name(self):
        form = parse(multipart_body(files={"file": ("C/docs/report.txt", b"x")}))
        assert form.file("file").filename == "report.txt"

    def test_empty_filename_is_a_value(self):
        form = parse(multipart_body(files={"file": ("", b"content")}))
        with pytest.raises(KeyError):
            form.file("file")
        assert form.value("file") == "content"

    def test_missing_file_field(self):
        form = parse(multipart_body(fields={"other": "x"}))
        with pytest.raises(KeyError):
            form.file("file")

    def test_preamble_ignored(self):
        body = b"This is a preamble.\r\n" + multipart_body(files={"file": ("a.txt", b"ok")})
        assert parse(body).file("file").size == 2

    def test_not_multipart(self):
        with pytest.raises(MultipartError):
            parse(b"a=1", content_type="application/x-www-form-urlencoded")

    def test_missing_content_type(self):
        with pytest.raises(MultipartError):
            parse(b"", content_type="")

    def test_missing_boundary(self):
        with pytest.raises(MultipartError):
            parse(b"", content_type="multipart/form-data")

    def test_truncated_body(self, temp_dir):
        body = multipart_body(files={"file": ("big.bin", os.urandom(5000))})
        with pytest.raises(MultipartError):
            parse(body[:-100], max_memory=10)
        assert list(temp_dir.iterdir()) == []

    def test_no_delimiter(self):
        with pytest.raises(MultipartError):
            parse(b"just some bytes\r\n")

    def test_values_not_bound_by_file_budget(self):
        body = multipart_body(fields={"note": "x" * 100})
        form = parse(body, max_memory=0)
        assert form.value("note") == "x" * 100
