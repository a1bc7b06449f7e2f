"""
=============================================================================
CONTENT-TYPE DETECTION
=============================================================================

Downloads need a Content-Type so browsers know whether to render or save
the file. Detection happens in two steps:

    1. EXTENSION   a small built-in table, then the platform `mimetypes`
                   database for anything else
    2. SNIFFING    for unknown extensions, the first 512 bytes decide
                   between text/plain and application/octet-stream

Text types always carry "; charset=utf-8".

=============================================================================
"""

import mimetypes
from pathlib import Path
from typing import Optional, Union


DEFAULT_MIME_TYPE = "application/octet-stream"
SNIFF_LENGTH = 512

# Extension table, checked before the platform database so results do not
# depend on what /etc/mime.types happens to contain.
MIME_TYPES = {
    # text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".json": "application/json",
    ".xml": "text/xml",
    ".wasm": "application/wasm",

    # images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".ico": "image/x-icon",
    ".avif": "image/avif",

    # media
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".wav": "audio/wav",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # documents and archives
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
}

_TEXT_LIKE = {"application/json", "application/javascript", "image/svg+xml"}


def is_text_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in _TEXT_LIKE


def _with_charset(mime_type: str) -> str:
    if is_text_type(mime_type) and "charset" not in mime_type:
        return f"{mime_type}; charset=utf-8"
    return mime_type


def type_by_extension(path: Union[str, Path]) -> Optional[str]:
    """
    Look up a MIME type from the file extension alone.

    Returns None when the extension is unknown.

    Example:
        >>> type_by_extension("index.HTML")
        'text/html; charset=utf-8'
    """
    extension = Path(path).suffix.lower()
    if not extension:
        return None
    mime_type = MIME_TYPES.get(extension) or mimetypes.types_map.get(extension)
    return _with_charset(mime_type) if mime_type else None


def sniff(head: bytes) -> str:
    """
    Guess a content type from the first bytes of a file.

    Anything that decodes as UTF-8 without control characters is treated
    as plain text; everything else is binary.
    """
    head = head[:SNIFF_LENGTH]
    if not head:
        return "text/plain; charset=utf-8"
    if head.lstrip().lower().startswith((b"<!doctype html", b"<html")):
        return "text/html; charset=utf-8"
    try:
        # A multi-byte sequence may be cut at the sniff boundary.
        text = head.decode("utf-8") if len(head) < SNIFF_LENGTH else head.decode("utf-8", "ignore")
    except UnicodeDecodeError:
        return DEFAULT_MIME_TYPE
    if any(ord(c) < 0x20 and c not in "\t\n\r\f" for c in text):
        return DEFAULT_MIME_TYPE
    return "text/plain; charset=utf-8"


def get_content_type(path: Union[str, Path], head: bytes = b"") -> str:
    """Content-Type for a file: by extension, else by content."""
    return type_by_extension(path) or sniff(head)
