"""
=============================================================================
HANDLERS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ dispatch.py     classify() + RequestDispatcher                      │
    │ static.py       FileTransferHandler: files, listings, ranges        │
    │ upload_page.py  UploadPageHandler: the ?upload form                 │
    │ upload.py       UploadHandler: multipart POST into the tree         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .dispatch import Action, RequestDispatcher, classify
from .static import FileTransferHandler, parse_range
from .upload import UploadHandler
from .upload_page import UploadPageHandler

__all__ = [
    "Action",
    "RequestDispatcher",
    "classify",
    "FileTransferHandler",
    "parse_range",
    "UploadHandler",
    "UploadPageHandler",
]
