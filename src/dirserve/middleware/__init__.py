"""
=============================================================================
MIDDLEWARE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ base.py     Middleware contract, MiddlewarePipeline                 │
    │ logging.py  LoggingMiddleware: one "Request" record per request     │
    │ prefix.py   StripPrefixMiddleware: "/files/a.txt" → "/a.txt"        │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog, ResponseState
from .prefix import StripPrefixMiddleware

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "LoggingMiddleware",
    "RequestLog",
    "ResponseState",
    "StripPrefixMiddleware",
]
