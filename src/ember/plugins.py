"""
=============================================================================
PLUGINS
=============================================================================

A plugin is any object with an ``on_attach(server, *args, **kwargs)``
method. Ember.attach() calls it and the plugin registers whatever handlers
it needs:

    class Greeter:
        def on_attach(self, server, greeting="hi"):
            server.on("message", lambda args: server.send(greeting, args["id"]))

    app.attach(Greeter(), greeting="hello")

=============================================================================
ACCESS LOG
=============================================================================

    "before-request" (inserted first)         "after-request"
    ┌────────────────────────────────┐        ┌─────────────────────────────┐
    │ start timer                    │        │ stop timer                  │
    │ generate request id            │  ...   │ emit one line to            │
    │ patch: {"request_id": "a1b2"}  │        │   the "ember.access" logger │
    └────────────────────────────────┘        │ X-Request-ID on the response│
                                              └─────────────────────────────┘

    text:  127.0.0.1 - - [05/Jan/2026:10:55:36 +0000] "GET /api/data" 200 27 0.41ms
    json:  {"request_id": "a1b2c3d4", "method": "GET", "path": "/api/data", ...}

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from .http.response import HTTPResponse


logger = logging.getLogger("ember.access")


@dataclass
class RequestLog:
    """One access log entry."""

    request_id: str
    client_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        """Apache-style access line."""
        return " ".join([
            self.client_ip, "-", "-",
            f"[{self.timestamp}]",
            f'"{self.method} {self.path}"',
            str(self.status_code),
            str(self.content_length),
            f"{self.duration_ms:.2f}ms",
        ])


def _describe(response: Any) -> Tuple[int, int]:
    """Best-effort (status, body length) for whatever a handler returned."""
    if isinstance(response, HTTPResponse):
        return int(response.status), len(response.body)
    if response is None:
        return 404, 0
    if isinstance(response, dict):
        return int(response.get("status", 200)), len(response.get("body") or b"")
    return 0, 0


class AccessLogPlugin:
    """
    Request logging with timing and request ids.

    Usage:
        app.attach(AccessLogPlugin())
        app.attach(AccessLogPlugin(log_format="json", skip_paths=["/health"]))
    """

    FORMATS = ("text", "json")

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[List[str]] = None,
    ):
        """
        Args:
            log_format: "text" (Apache-style) or "json".
            include_request_id: Add X-Request-ID to HTTPResponse results.
            log_level: Level the access lines are logged at.
            skip_paths: Paths that are served but not logged.
        """
        if log_format not in self.FORMATS:
            raise ValueError(f"log_format must be one of {self.FORMATS}, got {log_format!r}")
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = frozenset(skip_paths or ())

        # id(request) → (request id, perf_counter at before-request)
        self._in_flight: Dict[int, Tuple[str, float]] = {}
        self._handler_ids: List[str] = []

    def on_attach(self, server: Any) -> None:
        # Position 1 so the clock starts ahead of every other before-request.
        self._handler_ids = [
            server.on("before-request", self._start, pos=1),
            server.on("after-request", self._finish),
        ]

    def detach(self, server: Any) -> None:
        for handler_id in self._handler_ids:
            server.off(handler_id)
        self._handler_ids = []
        self._in_flight.clear()

    def _start(self, args: Dict[str, Any]) -> Dict[str, Any]:
        request_id = uuid.uuid4().hex[:8]
        self._in_flight[id(args["request"])] = (request_id, time.perf_counter())
        return {"request_id": request_id}

    def _finish(self, args: Dict[str, Any]) -> None:
        request = args["request"]
        response = args.get("response")
        now = time.perf_counter()
        request_id, started = self._in_flight.pop(id(request), ("-", now))

        if self.include_request_id and isinstance(response, HTTPResponse):
            response.set_header("X-Request-ID", request_id)
        if request.path in self.skip_paths:
            return

        status, length = _describe(response)
        entry = RequestLog(
            request_id=request_id,
            client_id=args["id"],
            method=request.method,
            path=request.path,
            query=urlencode(request.query_params, doseq=True),
            client_ip=request.remote_addr,
            user_agent=request.user_agent or "-",
            status_code=status,
            content_length=length,
            duration_ms=(now - started) * 1000,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )
        line = json.dumps(entry.to_dict()) if self.log_format == "json" else entry.to_text()
        logger.log(self.log_level, line)
