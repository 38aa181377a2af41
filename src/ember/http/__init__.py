"""
=============================================================================
HTTP MESSAGES
=============================================================================

The request context handed to request-side events, and the response
types handlers may return.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST (request.py)                                                │
    │ ─────────────────────────────────────────────────────────────────── │
    │ Input:   b"GET /users?id=1 HTTP/1.1\\r\\nHost: ...\\r\\n\\r\\n"          │
    │ Output:  HTTPRequest(method="GET", path="/users", ...)              │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ RESPONSE (response.py)                                              │
    │ ─────────────────────────────────────────────────────────────────── │
    │ HTTPResponse, ResponseBuilder, coerce_response()                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    coerce_response,
    ok,
    json_response,
    not_found,
    bad_request,
    internal_error,
)

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "coerce_response",
    "ok",
    "json_response",
    "not_found",
    "bad_request",
    "internal_error",
]
