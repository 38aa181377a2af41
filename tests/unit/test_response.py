"""
Unit tests for HTTP responses and coerce_response().
"""

import json
from datetime import datetime, timezone
from http import HTTPStatus

import pytest

from ember.http.response import (
    HTTPResponse,
    ResponseBuilder,
    coerce_response,
    format_http_date,
    internal_error,
    json_response,
    not_found,
    ok,
)


class TestHTTPResponse:
    """Tests for HTTPResponse serialization."""

    def test_status_line(self):
        assert HTTPResponse(status=HTTPStatus.OK).status_line == "HTTP/1.1 200 OK"
        assert HTTPResponse(status=404).status_line == "HTTP/1.1 404 Not Found"

    def test_int_status_coerced(self):
        """Plain ints become HTTPStatus members."""
        response = HTTPResponse(status=201)
        assert response.status is HTTPStatus.CREATED

    def test_unregistered_status_kept(self):
        """Codes HTTPStatus does not list are sent with an empty reason."""
        response = HTTPResponse(status=299)

        assert response.status == 299
        assert response.status_line == "HTTP/1.1 299 "
        assert response.to_bytes().startswith(b"HTTP/1.1 299 \r\n")

    @pytest.mark.parametrize("code", [0, 99, 600, 1000])
    def test_out_of_range_status_rejected(self, code):
        with pytest.raises(ValueError):
            HTTPResponse(status=code)

    def test_builder_accepts_unregistered_status(self):
        assert ResponseBuilder().status(520).build().status == 520

    def test_str_body_encoded(self):
        assert HTTPResponse(body="héllo").body == "héllo".encode("utf-8")

    def test_to_bytes_fills_standard_headers(self):
        result = HTTPResponse(headers={"X-Custom": "value"}, body=b"test").to_bytes("Test/2.0")

        assert result.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Server: Test/2.0\r\n" in result
        assert b"Date: " in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_explicit_headers_win(self):
        result = HTTPResponse(headers={"Server": "custom"}, body=b"").to_bytes("Ember/1.0")

        assert b"Server: custom\r\n" in result
        assert b"Ember/1.0" not in result

    def test_set_header_chaining(self):
        response = HTTPResponse().set_header("X-One", "1").set_header("X-Two", "2")
        assert response.headers == {"X-One": "1", "X-Two": "2"}


class TestResponseBuilder:
    """Tests for the fluent builder."""

    def test_json_body(self):
        data = {"name": "John", "age": 30}
        response = ResponseBuilder().status(HTTPStatus.CREATED).json(data).build()

        assert response.status == HTTPStatus.CREATED
        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert json.loads(response.body) == data

    def test_html_body(self):
        response = ResponseBuilder().html("<p>Hi</p>").build()

        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.body == b"<p>Hi</p>"

    def test_close_connection(self):
        assert ResponseBuilder().close_connection().build().headers["Connection"] == "close"


class TestHelpers:
    """Tests for ok()/not_found()/... helpers."""

    def test_ok_variants(self):
        assert ok("Hello").body == b"Hello"
        assert ok(b"\x00", content_type="application/octet-stream").headers["Content-Type"] == \
            "application/octet-stream"
        assert json.loads(ok({"msg": "hi"}).body) == {"msg": "hi"}

    def test_error_helpers(self):
        assert not_found().status == HTTPStatus.NOT_FOUND
        assert internal_error().status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert json_response([1], status=202).status == HTTPStatus.ACCEPTED


class TestCoerceResponse:
    """Tests for turning handler results into responses."""

    def test_response_passes_through(self):
        response = ok("x")
        assert coerce_response(response) is response

    def test_none_is_404(self):
        assert coerce_response(None).status == HTTPStatus.NOT_FOUND

    def test_mapping(self):
        response = coerce_response({
            "status": 201,
            "headers": {"Content-Type": "text/plain", "X-Count": 3},
            "body": "made",
        })

        assert response.status == HTTPStatus.CREATED
        assert response.headers == {"Content-Type": "text/plain", "X-Count": "3"}
        assert response.body == b"made"

    def test_mapping_defaults(self):
        response = coerce_response({})

        assert response.status == HTTPStatus.OK
        assert response.body == b""

    def test_mapping_with_unregistered_status(self):
        response = coerce_response({"status": 520, "body": "origin down"})

        assert response.status == 520
        assert response.body == b"origin down"

    def test_mapping_with_invalid_status(self):
        with pytest.raises(ValueError):
            coerce_response({"status": 1000})

    @pytest.mark.parametrize("value", ["plain string", 42, ["a"]])
    def test_other_values_rejected(self, value):
        with pytest.raises(TypeError):
            coerce_response(value)


def test_format_http_date():
    dt = datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc)
    assert format_http_date(dt) == "Thu, 15 Jan 2026 12:30:45 GMT"
