"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns raw HTTP/1.x bytes into HTTPRequest objects. Every request-side
event receives one under the "request" key, and the default client id
converter reads the peer address from it.

=============================================================================
TWO-STAGE PARSING
=============================================================================

The transport fires the "header" event before the body has arrived, so
parsing is split in two:

    raw bytes ──► parse_head() ──► HTTPRequest (body = b"")
                                        │
                                        │   on_headers(request)
                                        │   ├── response → send it, skip body
                                        │   └── None     → keep reading
                                        ▼
                  parse()      ──► HTTPRequest (body filled in)

    parse(data) == parse_head(header block) + body by Content-Length

=============================================================================
WEBSOCKET UPGRADES
=============================================================================

A request carrying

    Connection: Upgrade
    Upgrade: websocket

never reaches the request pipeline. The transport sees
is_websocket_upgrade and hands the raw head to the WebSocket handshake.

=============================================================================
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit


Address = Tuple[str, int]

SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

KNOWN_METHODS = frozenset({
    "GET", "HEAD", "POST", "PUT", "PATCH",
    "DELETE", "OPTIONS", "TRACE", "CONNECT",
})

HEAD_TERMINATOR = b"\r\n\r\n"


class HTTPParseError(Exception):
    """
    A request the transport cannot serve.

    status_code is what the client gets back:

        400  malformed syntax, unsafe path
        405  method outside KNOWN_METHODS
        413  head or body over max_request_size
        505  anything but HTTP/1.0 and HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


_UNSET = object()


@dataclass
class HTTPRequest:
    """
    One parsed HTTP request.

    =========================================================================
    FIELDS
    =========================================================================

        method          "GET", "POST", ...
        path            decoded path, query string removed
        version         "HTTP/1.1" or "HTTP/1.0"
        headers         lowercase name → value
        query_params    "?a=1&a=2&b=3" → {"a": ["1", "2"], "b": ["3"]}
        body            exactly Content-Length bytes
        client_address  (ip, port) of the peer
        raw             the bytes this request was parsed from

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""
    client_address: Address = ("", 0)
    raw: bytes = b""

    _decoded: Any = field(default=_UNSET, repr=False, compare=False)

    # =========================================================================
    # PEER
    # =========================================================================

    @property
    def remote_addr(self) -> str:
        return self.client_address[0]

    @property
    def remote_port(self) -> int:
        return self.client_address[1]

    # =========================================================================
    # HEADERS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Header value by case-insensitive name."""
        return self.headers.get(name.lower(), default)

    def _header_tokens(self, name: str) -> List[str]:
        return [t.strip().lower() for t in self.get_header(name).split(",") if t.strip()]

    @property
    def host(self) -> str:
        return self.get_header("host")

    @property
    def user_agent(self) -> str:
        return self.get_header("user-agent")

    @property
    def content_type(self) -> Optional[str]:
        """Media type only: "text/html; charset=utf-8" → "text/html"."""
        media_type = self.get_header("content-type").partition(";")[0].strip()
        return media_type.lower() or None

    @property
    def content_length(self) -> int:
        """Declared body size; missing, garbled or negative values count as 0."""
        value = self.get_header("content-length", "0").strip()
        return int(value) if value.isdigit() else 0

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection unless told "close";
        HTTP/1.0 drops it unless told "keep-alive".
        """
        tokens = self._header_tokens("connection")
        if self.version == "HTTP/1.0":
            return "keep-alive" in tokens
        return "close" not in tokens

    @property
    def is_websocket_upgrade(self) -> bool:
        """True for a WebSocket opening handshake."""
        return (
            self.method == "GET"
            and self.get_header("upgrade").strip().lower() == "websocket"
            and "upgrade" in self._header_tokens("connection")
        )

    # =========================================================================
    # QUERY AND BODY
    # =========================================================================

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        for value in self.query_params.get(name, ()):
            return value
        return default

    def get_query_list(self, name: str) -> List[str]:
        return list(self.query_params.get(name, ()))

    @property
    def json(self) -> Any:
        """
        The body decoded as JSON, or None for an empty body.

        Raises:
            HTTPParseError: If the body is not valid UTF-8 JSON.
        """
        if self._decoded is _UNSET:
            if not self.body:
                return None
            try:
                self._decoded = json.loads(self.body.decode("utf-8"))
            except ValueError as e:
                raise HTTPParseError(f"Body is not valid JSON: {e}")
        return self._decoded


class RequestParser:
    """
    Builds HTTPRequest objects from raw bytes.

    ==========================================================================
    STEPS
    ==========================================================================

        1. size limit                      413 when exceeded
        2. split the head at \\r\\n\\r\\n
        3. request line  METHOD SP TARGET SP VERSION
        4. header lines  "Name: value", folded lines joined, repeats merged
        5. body          Content-Length bytes, the rest is left alone

    ==========================================================================
    """

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def _check_size(self, data: bytes) -> None:
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request of {len(data)} bytes exceeds {self.max_request_size}",
                status_code=413,
            )

    def parse_head(self, head: bytes, client_address: Address = ("", 0)) -> HTTPRequest:
        """
        Parse the request line and headers.

        Args:
            head: The header block, with or without the terminating blank line.
            client_address: Peer (ip, port).

        Returns:
            An HTTPRequest whose body is still empty.
        """
        self._check_size(head)

        text = head.partition(HEAD_TERMINATOR)[0].decode("utf-8", errors="replace")
        request_line, *header_lines = text.split("\r\n")
        if not request_line.strip():
            raise HTTPParseError("Request line is missing")

        method, target, version = self._split_request_line(request_line)
        path, query_params = self._split_target(target)

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=self._collect_headers(header_lines),
            query_params=query_params,
            client_address=client_address,
            raw=head,
        )

    def parse(self, data: bytes, client_address: Address = ("", 0)) -> HTTPRequest:
        """
        Parse one complete request, headers and body.

        Bytes past Content-Length belong to the next pipelined request and
        are not part of the result.

        Raises:
            HTTPParseError: If the request is malformed or cut short.
        """
        self._check_size(data)

        head_size = data.find(HEAD_TERMINATOR)
        if head_size < 0:
            raise HTTPParseError("Header block is not terminated")
        head_size += len(HEAD_TERMINATOR)

        request = self.parse_head(data[:head_size], client_address)
        expected = request.content_length
        available = len(data) - head_size
        if available < expected:
            raise HTTPParseError(f"Body cut short: {available} of {expected} bytes")

        request.body = data[head_size:head_size + expected]
        request.raw = data[:head_size + expected]
        return request

    # =========================================================================
    # PIECES
    # =========================================================================

    @staticmethod
    def _split_request_line(line: str) -> Tuple[str, str, str]:
        parts = line.split(" ")
        if len(parts) != 3 or not all(parts):
            raise HTTPParseError(f"Malformed request line: {line!r}")
        method, target, version = parts

        if not version.startswith("HTTP/") or not method.isalpha() or not method.isupper():
            raise HTTPParseError(f"Malformed request line: {line!r}")
        if method not in KNOWN_METHODS:
            raise HTTPParseError(f"Method {method} is not supported", status_code=405)
        if version not in SUPPORTED_VERSIONS:
            raise HTTPParseError(f"{version} is not supported", status_code=505)
        return method, target, version

    @staticmethod
    def _split_target(target: str) -> Tuple[str, Dict[str, List[str]]]:
        parts = urlsplit(target)
        path = unquote(parts.path) or "/"
        if ".." in path.split("/"):
            raise HTTPParseError(f"Unsafe path: {path}")
        return path, parse_qs(parts.query, keep_blank_values=True)

    @staticmethod
    def _collect_headers(lines: List[str]) -> Dict[str, str]:
        """
        Lowercase names; folded (indented) lines continue the previous
        value, and a repeated name is merged with ", " (RFC 7230).
        Lines without a colon are skipped.
        """
        headers: Dict[str, str] = {}
        last: Optional[str] = None

        for line in lines:
            if not line:
                continue
            if line[:1] in (" ", "\t"):
                if last is not None:
                    headers[last] = f"{headers[last]} {line.strip()}"
                continue

            name, colon, value = line.partition(":")
            name = name.strip().lower()
            if not colon or not name:
                continue
            value = value.strip()
            headers[name] = f"{headers[name]}, {value}" if name in headers else value
            last = name

        return headers


def parse_request(
    data: bytes,
    client_address: Address = ("", 0),
    max_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """Parse one complete request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
