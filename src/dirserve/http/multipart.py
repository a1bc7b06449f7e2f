"""
=============================================================================
MULTIPART/FORM-DATA PARSER
=============================================================================

Parses an upload form body as it arrives on the connection. The body is
read line by line, so memory use is bounded by the configured budget no
matter how large the upload is.

=============================================================================
BODY LAYOUT (RFC 7578)
=============================================================================

    Content-Type: multipart/form-data; boundary=XyZ

    ┌─────────────────────────────────────────────────────────────────────┐
    │  (preamble, ignored)                                                 │
    │  --XyZ\\r\\n                                  ◄── delimiter          │
    │  Content-Disposition: form-data; name="file"; filename="a.pdf"\\r\\n │
    │  Content-Type: application/pdf\\r\\n                                 │
    │  \\r\\n                                                              │
    │  %PDF-1.7 ... file bytes ...                                        │
    │  \\r\\n--XyZ\\r\\n                              ◄── CRLF belongs to   │
    │  Content-Disposition: form-data; name="note"\\r\\n    the delimiter  │
    │  \\r\\n                                                              │
    │  hello                                                              │
    │  \\r\\n--XyZ--\\r\\n                            ◄── close delimiter   │
    │  (epilogue, ignored)                                                 │
    └─────────────────────────────────────────────────────────────────────┘

The line break in front of a delimiter is not part of the data, so every
line's terminator is held back until the next line proves it is not a
delimiter.

=============================================================================
MEMORY BUDGET
=============================================================================

    file parts   kept in memory while the total stays within `max_memory`,
                 otherwise spooled to a temporary file on disk
    plain fields always in memory, limited to max_memory + 10 MiB in total

A part sent with an empty filename is a plain field, not a file.

=============================================================================
"""

import io
import os
import re
import tempfile
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional, Tuple
from urllib.parse import unquote


MAX_LINE = 64 * 1024
MAX_PART_HEADER_SIZE = 16 * 1024
VALUE_ALLOWANCE = 10 << 20
TEMP_PREFIX = "dirserve-upload-"


class MultipartError(ValueError):
    """The body is not a well-formed multipart/form-data message."""


# =============================================================================
# HEADER PARAMETERS
# =============================================================================

_OPTION_RE = re.compile(
    r';\s*([^\s=;]+)\s*=\s*("(?:\\.|[^"\\])*"|[^;]*)',
)


def parse_options_header(value: str) -> Tuple[str, Dict[str, str]]:
    """
    Split a header value into its main value and parameters.

        >>> parse_options_header('form-data; name="file"; filename="a b.txt"')
        ('form-data', {'name': 'file', 'filename': 'a b.txt'})

    Quoted strings are unescaped. RFC 2231 extended parameters
    (filename*=UTF-8''...) are decoded and stored without the star.
    """
    main, _, rest = value.partition(";")
    options: Dict[str, str] = {}

    for match in _OPTION_RE.finditer(";" + rest):
        key = match.group(1).lower()
        raw = match.group(2).strip()

        if raw.startswith('"') and raw.endswith('"') and len(raw) >= 2:
            raw = re.sub(r"\\(.)", r"\1", raw[1:-1])

        if key.endswith("*"):
            charset, _, encoded = raw.partition("''")
            try:
                options[key[:-1]] = unquote(encoded, encoding=charset or "utf-8", errors="strict")
            except (LookupError, UnicodeDecodeError):
                continue
        elif key not in options:
            options[key] = raw

    return main.strip().lower(), options


def base_name(filename: str) -> str:
    """
    Final element of a client-supplied file name.

        >>> base_name("/home/alice/report.pdf")
        'report.pdf'
        >>> base_name("docs/")
        'docs'
    """
    trimmed = filename.rstrip("/")
    if not trimmed:
        return "/"
    return trimmed.rsplit("/", 1)[-1]


# =============================================================================
# FORM MODEL
# =============================================================================

@dataclass
class FilePart:
    """
    One uploaded file.

    The content is either held in memory or in a temporary file at
    `temp_path`. Call open() to read it.
    """

    name: str
    filename: str
    content_type: str = "application/octet-stream"
    headers: Dict[str, str] = field(default_factory=dict)
    size: int = 0
    temp_path: Optional[str] = None
    _data: bytes = field(default=b"", repr=False)

    @property
    def in_memory(self) -> bool:
        return self.temp_path is None

    def open(self) -> BinaryIO:
        """Open the content for reading."""
        if self.temp_path is None:
            return io.BytesIO(self._data)
        return open(self.temp_path, "rb")

    def remove(self) -> None:
        """Delete the backing temporary file, if any."""
        if self.temp_path is not None:
            path, self.temp_path = self.temp_path, None
            os.remove(path)


@dataclass
class MultipartForm:
    """Parsed form: plain values and file parts, both keyed by field name."""

    values: Dict[str, List[str]] = field(default_factory=dict)
    files: Dict[str, List[FilePart]] = field(default_factory=dict)

    def value(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.values.get(name)
        return values[0] if values else default

    def file(self, name: str) -> FilePart:
        """
        First file uploaded under `name`.

        Raises:
            KeyError: No file part with that field name.
        """
        parts = self.files.get(name)
        if not parts:
            raise KeyError(name)
        return parts[0]

    def remove_all(self) -> None:
        """
        Delete every temporary file.

        All files are attempted; the first failure is raised afterwards.
        """
        first_error: Optional[OSError] = None
        for parts in self.files.values():
            for part in parts:
                try:
                    part.remove()
                except OSError as e:
                    if first_error is None:
                        first_error = e
        if first_error is not None:
            raise first_error


# =============================================================================
# PARSER
# =============================================================================

class _FileSink:
    """Collects one file part, spilling to disk past the memory budget."""

    def __init__(self, memory_left: int):
        self.memory_left = memory_left
        self.size = 0
        self._buffer = io.BytesIO()
        self._file = None
        self.path: Optional[str] = None

    def write(self, data: bytes) -> None:
        if not data:
            return
        self.size += len(data)
        if self._file is None and self.size > self.memory_left:
            self._file = tempfile.NamedTemporaryFile(prefix=TEMP_PREFIX, delete=False)
            self.path = self._file.name
            self._file.write(self._buffer.getvalue())
            self._buffer = io.BytesIO()
        (self._file or self._buffer).write(data)

    def finish(self) -> bytes:
        if self._file is not None:
            self._file.close()
            return b""
        return self._buffer.getvalue()

    def discard(self) -> None:
        if self._file is not None:
            self._file.close()
        if self.path is not None:
            os.remove(self.path)
            self.path = None


class _ValueSink:
    def __init__(self, limit: int):
        self.limit = limit
        self.size = 0
        self._buffer = io.BytesIO()

    def write(self, data: bytes) -> None:
        self.size += len(data)
        if self.size > self.limit:
            raise MultipartError("message too large")
        self._buffer.write(data)

    def finish(self) -> bytes:
        return self._buffer.getvalue()


class MultipartParser:
    """
    Streaming multipart/form-data parser.

    Usage:
        parser = MultipartParser(stream, boundary, max_memory=8 * 1024)
        form = parser.parse()
        try:
            part = form.file("file")
            ...
        finally:
            form.remove_all()
    """

    def __init__(self, stream: BinaryIO, boundary: str, max_memory: int):
        if not boundary or len(boundary) > 70:
            raise MultipartError("invalid boundary")
        self.stream = stream
        self.delimiter = b"--" + boundary.encode("latin-1")
        self.close_delimiter = self.delimiter + b"--"
        self.max_memory = max_memory

    def _readline(self) -> bytes:
        try:
            return self.stream.readline(MAX_LINE)
        except OSError as e:
            raise MultipartError(f"cannot read body: {e}") from e

    def _classify(self, line: bytes) -> Optional[str]:
        """'next' or 'last' if the line is a delimiter, else None."""
        if not line.startswith(b"--"):
            return None
        stripped = line.rstrip(b" \t\r\n")
        if stripped == self.delimiter:
            return "next"
        if stripped == self.close_delimiter:
            return "last"
        return None

    def parse(self) -> MultipartForm:
        form = MultipartForm()
        try:
            self._parse_into(form)
        except BaseException:
            # Do not leak temporary files when the body is bad.
            try:
                form.remove_all()
            except OSError:
                pass
            raise
        return form

    def _parse_into(self, form: MultipartForm) -> None:
        # Preamble
        while True:
            line = self._readline()
            if not line:
                raise MultipartError("no multipart delimiter found")
            kind = self._classify(line)
            if kind == "last":
                return
            if kind == "next":
                break

        memory_left = self.max_memory
        values_left = self.max_memory + VALUE_ALLOWANCE

        while True:
            headers = self._read_part_headers()
            disposition, params = parse_options_header(headers.get("content-disposition", ""))
            name = params.get("name", "") if disposition == "form-data" else ""
            filename = params.get("filename")

            if filename:
                sink = _FileSink(memory_left)
                try:
                    kind = self._read_part_body(sink)
                except BaseException:
                    sink.discard()
                    raise
                data = sink.finish()
                part = FilePart(
                    name=name,
                    filename=base_name(filename),
                    content_type=headers.get("content-type", "application/octet-stream"),
                    headers=headers,
                    size=sink.size,
                    temp_path=sink.path,
                    _data=data,
                )
                if part.in_memory:
                    memory_left -= part.size
                if name:
                    form.files.setdefault(name, []).append(part)
                else:
                    part.remove()
            else:
                sink = _ValueSink(values_left)
                kind = self._read_part_body(sink)
                values_left -= sink.size
                if name:
                    value = sink.finish().decode("utf-8", "replace")
                    form.values.setdefault(name, []).append(value)

            if kind == "last":
                return

    def _read_part_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        total = 0
        last_name = None

        while True:
            line = self._readline()
            if not line:
                raise MultipartError("unexpected end of part headers")
            total += len(line)
            if total > MAX_PART_HEADER_SIZE:
                raise MultipartError("part headers too large")

            text = line.decode("utf-8", "replace").rstrip("\r\n")
            if not text:
                return headers

            if text[0] in " \t" and last_name is not None:
                headers[last_name] += " " + text.strip()
                continue

            name, sep, value = text.partition(":")
            if not sep:
                raise MultipartError(f"malformed part header: {text!r}")
            last_name = name.strip().lower()
            headers[last_name] = value.strip()

    def _read_part_body(self, sink) -> str:
        """
        Copy part data into `sink` up to the next delimiter.

        Returns "next" or "last" depending on which delimiter ended it.
        """
        pending = b""          # line terminator held back from the previous line
        at_line_start = True

        while True:
            line = self._readline()
            if not line:
                raise MultipartError("unexpected end of multipart body")

            if pending == b"\r":
                # A lone CR at a read boundary may start a CRLF.
                line = pending + line
                pending = b""

            if at_line_start:
                kind = self._classify(line)
                if kind is not None:
                    return kind

            held = pending
            if line.endswith(b"\r\n"):
                pending, line, at_line_start = b"\r\n", line[:-2], True
            elif line.endswith(b"\n"):
                pending, line, at_line_start = b"\n", line[:-1], True
            elif line.endswith(b"\r"):
                pending, line, at_line_start = b"\r", line[:-1], False
            else:
                pending, at_line_start = b"", False

            sink.write(held + line)


def parse_multipart(stream: BinaryIO, content_type: str, max_memory: int) -> MultipartForm:
    """
    Parse a multipart/form-data body.

    Args:
        stream: Body stream supporting readline().
        content_type: The request's Content-Type header value.
        max_memory: Bytes of file content kept in memory before spilling.

    Raises:
        MultipartError: Not multipart, missing boundary, or malformed body.
    """
    media_type, params = parse_options_header(content_type or "")
    if media_type not in ("multipart/form-data", "multipart/mixed"):
        raise MultipartError("request Content-Type isn't multipart/form-data")
    boundary = params.get("boundary")
    if not boundary:
        raise MultipartError("no multipart boundary param in Content-Type")
    return MultipartParser(stream, boundary, max_memory).parse()
