"""Tests for wren.server.errors and the debug page."""

import logging

import pytest

from wren.errors import HTTPError, MethodNotAllowed, NotFound, RequiredConversionMissing
from wren.http.headers import Headers
from wren.http.request import Request
from wren.http.response import JSON_CONTENT_TYPE, Response
from wren.server.debug_page import application_data, render_debug_page
from wren.server.errors import (
    find_error_handler,
    handle_http_error,
    handle_internal_error,
)

pytestmark = pytest.mark.anyio


def _request(path: str = "/items/") -> Request:
    return Request(method="GET", path=path, server=("testserver", 80))


def _raised(exc: Exception) -> Exception:
    try:
        raise exc
    except Exception as caught:
        return caught


class TestHTTPErrors:
    def test_str(self) -> None:
        assert str(HTTPError(418, "short and stout")) == "418: short and stout"
        assert str(HTTPError(418)) == "418"

    def test_required_conversion_is_not_found(self) -> None:
        exc = RequiredConversionMissing("id")
        assert isinstance(exc, NotFound)
        assert exc.status == 404
        assert exc.argument == "id"


class TestFindErrorHandler:
    def test_exception_type_beats_status(self) -> None:
        def by_type():
            pass

        def by_status():
            pass

        handlers = {NotFound: by_type, 404: by_status}
        assert find_error_handler(handlers, RequiredConversionMissing("id"), 404) is by_type

    def test_falls_back_to_status(self) -> None:
        def by_status():
            pass

        assert find_error_handler({404: by_status}, NotFound(), 404) is by_status
        assert find_error_handler({}, NotFound(), 404) is None


class TestHandleHTTPError:
    async def test_default_not_found(self) -> None:
        response = await handle_http_error(NotFound(""), _request(), Response(), {})
        assert response.status == 404
        assert response.text == "Not Found"

    async def test_debug_not_found_names_uri(self) -> None:
        response = await handle_http_error(
            NotFound(""), _request(), Response(is_debug=True), {}
        )
        assert "No route matches http://testserver/items/" in response.text

    async def test_method_not_allowed_keeps_allow_header(self) -> None:
        response = await handle_http_error(
            MethodNotAllowed(frozenset({"GET"})), _request(), Response(), {}
        )
        assert response.status == 405
        assert ("Allow", "GET") in response.headers
        assert response.json() == {"error": "Method Not Allowed", "status": 405}

    async def test_handler_result_keeps_error_status(self) -> None:
        seen = {}

        async def handler(request, response, args):
            seen["attribute"] = request.get_attribute("exception")
            seen["args"] = args
            return "custom"

        exc = NotFound("gone")
        response = await handle_http_error(exc, _request(), Response(), {404: handler})

        assert response.status == 404
        assert response.text == "custom"
        assert seen == {"attribute": exc, "args": {"exception": exc}}

    async def test_handler_may_choose_status(self) -> None:
        async def handler(request, response, args):
            return response.with_status(410)

        response = await handle_http_error(NotFound(), _request(), Response(), {404: handler})
        assert response.status == 410


class TestHandleInternalError:
    async def test_logs_and_hides_details(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="wren.server"):
            response = await handle_internal_error(
                _raised(RuntimeError("secret")), _request(), Response(), {}, False
            )

        assert response.status == 500
        assert response.text == "Internal Server Error"
        assert "secret" not in response.text
        assert any("500 GET /items/" in record.message for record in caplog.records)

    async def test_debug_page(self) -> None:
        response = await handle_internal_error(
            _raised(RuntimeError("broken")), _request(), Response(), {}, True
        )
        assert response.status == 500
        assert "RuntimeError" in response.text
        assert "broken" in response.text

    async def test_json_envelope(self) -> None:
        base = Response(is_debug=True).with_content_type(JSON_CONTENT_TYPE)
        response = await handle_internal_error(
            _raised(RuntimeError("broken")), _request(), base, {}, True
        )
        payload = response.json()
        assert payload["error"] == "Internal Server Error"
        assert payload["status"] == 500
        assert payload["_debug"]["data"]["exception"]["message"] == "broken"

    async def test_registered_handler(self) -> None:
        async def handler(request, response, args):
            return response.with_body_string(f"handled {type(args['exception']).__name__}")

        response = await handle_internal_error(
            _raised(KeyError("k")), _request(), Response(), {KeyError: handler}, False
        )
        assert response.status == 500
        assert response.text == "handled KeyError"


class TestDebugPage:
    def test_application_data(self) -> None:
        request = _request().with_attributes({"user": "ann"})
        rows = application_data(request)
        assert rows["Method"] == "GET"
        assert rows["Path"] == "/items/"
        assert rows["Attributes"] == "user='ann'"
        assert "Route" not in rows

    def test_masks_credentials(self) -> None:
        request = Request(
            method="GET",
            path="/",
            headers=Headers.from_dict({"Authorization": "Bearer abc", "Accept": "text/html"}),
        )
        page = render_debug_page(_raised(ValueError("<bad>")), request)

        assert "Bearer abc" not in page
        assert "text/html" in page
        assert "&lt;bad&gt;" in page
        assert "<bad>" not in page

    def test_includes_cause(self) -> None:
        try:
            try:
                raise KeyError("inner")
            except KeyError as inner:
                raise ValueError("outer") from inner
        except ValueError as exc:
            page = render_debug_page(exc, _request())

        assert "Caused by KeyError" in page
