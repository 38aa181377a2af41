"""
Unit tests for plugins and the access log.
"""

import json
import logging
import sys

import pytest

from ember.http import ok
from ember.logging import JSONFormatter
from ember.plugins import AccessLogPlugin


class TestAttach:
    """Tests for Ember.attach()."""

    def test_on_attach_receives_server_and_args(self, app):
        seen = []

        class Plugin:
            def on_attach(self, server, *args, **kwargs):
                seen.append((server, args, kwargs))

        app.attach(Plugin(), 1, greeting="hello")

        assert seen == [(app, (1,), {"greeting": "hello"})]


class TestAccessLogPlugin:
    """Tests for AccessLogPlugin."""

    def test_bad_format_rejected(self):
        with pytest.raises(ValueError):
            AccessLogPlugin(log_format="xml")

    def test_text_line(self, app, request_factory, caplog):
        app.attach(AccessLogPlugin())
        app.on("request", lambda args: ok("hello"))

        with caplog.at_level(logging.INFO, logger="ember.access"):
            app.call(request_factory(path="/api/data"))

        lines = [r.getMessage() for r in caplog.records if r.name == "ember.access"]
        assert len(lines) == 1
        assert lines[0].startswith("127.0.0.1 - - [")
        assert '"GET /api/data" 200 5 ' in lines[0]

    def test_json_line(self, app, request_factory, caplog):
        app.attach(AccessLogPlugin(log_format="json"))
        app.on("request", lambda args: {"status": 201, "body": "made"})

        with caplog.at_level(logging.INFO, logger="ember.access"):
            app.call(request_factory(path="/items", method="POST"))

        record = [r for r in caplog.records if r.name == "ember.access"][0]
        entry = json.loads(record.getMessage())
        assert entry["method"] == "POST"
        assert entry["path"] == "/items"
        assert entry["status_code"] == 201
        assert entry["content_length"] == 4
        assert entry["client_id"] == "ID_127.0.0.1_50000"

    def test_request_id_patch_and_header(self, app, request_factory):
        """The request id reaches handlers and the response header."""
        seen = {}
        app.attach(AccessLogPlugin())
        app.on("request", lambda args: (seen.update(args), ok("x"))[1])

        response = app.call(request_factory())

        assert len(seen["request_id"]) == 8
        assert response.headers["X-Request-ID"] == seen["request_id"]

    def test_request_id_header_disabled(self, app, request_factory):
        app.attach(AccessLogPlugin(include_request_id=False))
        app.on("request", lambda args: ok("x"))

        assert "X-Request-ID" not in app.call(request_factory()).headers

    def test_skip_paths(self, app, request_factory, caplog):
        app.attach(AccessLogPlugin(skip_paths=["/health"]))
        app.on("request", lambda args: ok("up"))

        with caplog.at_level(logging.INFO, logger="ember.access"):
            app.call(request_factory(path="/health"))

        assert not [r for r in caplog.records if r.name == "ember.access"]

    def test_detach(self, app, request_factory, caplog):
        plugin = AccessLogPlugin()
        app.attach(plugin)
        plugin.detach(app)
        seen = {}
        app.on("request", lambda args: seen.update(args))

        with caplog.at_level(logging.INFO, logger="ember.access"):
            app.call(request_factory())

        assert "request_id" not in seen
        assert not [r for r in caplog.records if r.name == "ember.access"]

    def test_inserted_ahead_of_existing_before_request(self, app, request_factory):
        """Handlers registered earlier still patch after the access log."""
        seen = {}
        app.on("before-request", lambda args: {"request_id": "mine"})
        app.attach(AccessLogPlugin())
        app.on("request", lambda args: seen.update(args))

        app.call(request_factory())

        assert seen["request_id"] == "mine"


class TestJSONFormatter:
    """Tests for the JSON log formatter."""

    def test_fields(self):
        record = logging.LogRecord(
            "ember.server", logging.WARNING, __file__, 1, "port %d busy", (8080,), None,
        )

        entry = json.loads(JSONFormatter().format(record))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "ember.server"
        assert entry["message"] == "port 8080 busy"
        assert "exc_info" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "ember", logging.ERROR, __file__, 1, "failed", (), sys.exc_info(),
            )

        entry = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in entry["exc_info"]
