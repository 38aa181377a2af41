"""
=============================================================================
HTTP RESPONSES
=============================================================================

Request handlers may return whatever they like; the request pipeline
passes it back untouched. Only the transport has to turn it into bytes,
and coerce_response() is where that happens:

    ┌──────────────────────────────┬──────────────────────────────────────┐
    │  Handler returned            │  Sent as                             │
    ├──────────────────────────────┼──────────────────────────────────────┤
    │  HTTPResponse                │  as is                               │
    │  {"status": 201,             │  HTTPResponse(status=201,            │
    │   "headers": {...},          │               headers={...},         │
    │   "body": "..."}             │               body=b"...")           │
    │  None (no handler answered)  │  404 Not Found                       │
    │  anything else               │  TypeError → transport answers 500   │
    │  status outside 100-599      │  ValueError → transport answers 500  │
    └──────────────────────────────┴──────────────────────────────────────┘

ResponseBuilder and the ok()/json_response()/... helpers are conveniences
for handler authors; nothing in the event layer requires them.

=============================================================================
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from http import HTTPStatus
from typing import Any, Dict, Optional, Union
import json


Body = Union[str, bytes]

TEXT = "text/plain; charset=utf-8"
HTML = "text/html; charset=utf-8"
JSON = "application/json; charset=utf-8"


def _to_bytes(body: Body) -> bytes:
    return body.encode("utf-8") if isinstance(body, str) else bytes(body)


def as_status(value: Union[HTTPStatus, int]) -> Union[HTTPStatus, int]:
    """
    HTTPStatus for registered codes, the plain int for any other code
    in 100-599 (520, 299, ...).

    Raises:
        ValueError: For codes outside 100-599.
    """
    code = int(value)
    if not 100 <= code <= 599:
        raise ValueError(f"Invalid HTTP status code: {code}")
    try:
        return HTTPStatus(code)
    except ValueError:
        return code


@dataclass
class HTTPResponse:
    """
    An HTTP response to be serialized by the transport.

        HTTPResponse(status=200, headers={...}, body=b"...")
            │
            └── to_bytes() ──► b"HTTP/1.1 200 OK\\r\\nContent-Length: ...\\r\\n\\r\\n..."
    """

    status: Union[HTTPStatus, int] = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    def __post_init__(self):
        self.status = as_status(self.status)
        self.body = _to_bytes(self.body)

    @property
    def status_line(self) -> str:
        phrase = self.status.phrase if isinstance(self.status, HTTPStatus) else ""
        return f"{self.version} {int(self.status)} {phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header; returns self for chaining."""
        self.headers[name] = value
        return self

    def set_body(self, body: Body) -> "HTTPResponse":
        self.body = _to_bytes(body)
        return self

    def to_bytes(self, server_name: str = "Ember/1.0") -> bytes:
        """
        Serialize for the socket.

        Content-Length, Date and Server are filled in unless the handler
        set them explicitly.
        """
        defaults = {
            "Content-Length": str(len(self.body)),
            "Date": format_http_date(datetime.now(timezone.utc)),
            "Server": server_name,
        }
        merged = {**defaults, **self.headers}
        head = self.status_line + "\r\n" + "".join(
            f"{name}: {value}\r\n" for name, value in merged.items()
        )
        return head.encode("utf-8") + b"\r\n" + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .header("X-Request-ID", "abc123")
            .json({"id": 1})
            .build())
    """

    def __init__(self):
        self._response = HTTPResponse()

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        self._response.status = as_status(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._response.set_header(name, value)
        return self

    def body(self, body: Body) -> "ResponseBuilder":
        self._response.set_body(body)
        return self

    def text(self, text: str, content_type: str = TEXT) -> "ResponseBuilder":
        return self.header("Content-Type", content_type).body(text)

    def html(self, html: str) -> "ResponseBuilder":
        return self.text(html, HTML)

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        return self.text(json.dumps(data, indent=2 if pretty else None), JSON)

    def close_connection(self) -> "ResponseBuilder":
        return self.header("Connection", "close")

    def build(self) -> HTTPResponse:
        r = self._response
        return HTTPResponse(status=r.status, headers=dict(r.headers), body=r.body)


def format_http_date(dt: datetime) -> str:
    """RFC 7231 HTTP-date, always in GMT: "Wed, 01 Jan 2026 12:00:00 GMT"."""
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def coerce_response(value: Any) -> HTTPResponse:
    """
    Turn a request handler's return value into an HTTPResponse.

    Raises:
        TypeError: For values that are neither a response, a mapping
                   nor None.
        ValueError: For a mapping whose status is outside 100-599.
    """
    if isinstance(value, HTTPResponse):
        return value
    if value is None:
        return not_found()
    if isinstance(value, Mapping):
        headers = {str(k): str(v) for k, v in dict(value.get("headers") or {}).items()}
        return HTTPResponse(
            status=value.get("status", HTTPStatus.OK),
            headers=headers,
            body=value.get("body") or b"",
        )
    raise TypeError(f"Cannot send {type(value).__name__} as an HTTP response")


# =============================================================================
# SHORTHANDS
# =============================================================================

def ok(body: Union[Body, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """200 OK. dict/list → JSON, str → text, bytes → raw."""
    builder = ResponseBuilder()
    if isinstance(body, (dict, list)):
        return builder.json(body).build()
    if isinstance(body, str):
        return builder.text(body, content_type or TEXT).build()
    if content_type:
        builder.header("Content-Type", content_type)
    return builder.body(body).build()


def json_response(data: Any, status: Union[HTTPStatus, int] = HTTPStatus.OK) -> HTTPResponse:
    return ResponseBuilder().status(status).json(data).build()


def _error(status: HTTPStatus, message: str) -> HTTPResponse:
    return json_response({"error": message}, status)


def not_found(message: str = "Not Found") -> HTTPResponse:
    return _error(HTTPStatus.NOT_FOUND, message)


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return _error(HTTPStatus.BAD_REQUEST, message)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return _error(HTTPStatus.INTERNAL_SERVER_ERROR, message)
