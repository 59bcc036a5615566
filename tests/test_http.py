"""Tests for wren.http: Request attributes and Response rendering."""

import pytest

from wren.http.headers import Headers
from wren.http.request import Request
from wren.http.response import JSON_CONTENT_TYPE, Response, describe_exception

pytestmark = pytest.mark.anyio


class TestRequestAttributes:
    def test_with_attribute_returns_new_request(self) -> None:
        request = Request(method="GET", path="/")
        tagged = request.with_attribute("user", "ann")

        assert tagged.get_attribute("user") == "ann"
        assert request.get_attribute("user") is None
        assert request.attributes == {}

    def test_with_attributes_merges(self) -> None:
        request = Request(method="GET", path="/").with_attribute("a", 1)
        merged = request.with_attributes({"b": 2, "a": 3})
        assert dict(merged.attributes) == {"a": 3, "b": 2}

    def test_without_attribute(self) -> None:
        request = Request(method="GET", path="/").with_attributes({"a": 1, "b": 2})
        assert dict(request.without_attribute("a").attributes) == {"b": 2}
        assert request.without_attribute("missing") is request

    def test_attributes_are_read_only(self) -> None:
        request = Request(method="GET", path="/").with_attribute("a", 1)
        with pytest.raises(TypeError):
            request.attributes["a"] = 2  # type: ignore[index]

    def test_default(self) -> None:
        assert Request(method="GET", path="/").get_attribute("a", "fallback") == "fallback"


class TestRequest:
    def test_uri_from_host_header(self) -> None:
        request = Request(
            method="GET",
            path="/users/",
            headers=Headers.from_dict({"Host": "example.com"}),
            scheme="https",
        )
        assert request.uri == "https://example.com/users/"

    def test_uri_from_server(self) -> None:
        request = Request(method="GET", path="/", server=("localhost", 8000))
        assert request.uri == "http://localhost:8000/"

    async def test_body_is_cached(self) -> None:
        messages = [
            {"type": "http.request", "body": b'{"a":', "more_body": True},
            {"type": "http.request", "body": b" 1}", "more_body": False},
        ]

        async def receive():
            return messages.pop(0)

        request = Request.from_asgi({"method": "POST", "path": "/"}, receive)
        assert await request.json() == {"a": 1}
        assert await request.text() == '{"a": 1}'

    async def test_body_shared_across_attribute_copies(self) -> None:
        messages = [{"type": "http.request", "body": b"hello", "more_body": False}]

        async def receive():
            return messages.pop(0)

        request = Request.from_asgi({"method": "POST", "path": "/"}, receive)
        assert await request.body() == b"hello"
        assert await request.with_attribute("a", 1).body() == b"hello"


class TestResponse:
    def test_chaining_is_immutable(self) -> None:
        response = Response()
        changed = response.with_status(201).with_header("X-Id", "7")
        assert response.status == 200
        assert changed.status == 201
        assert changed.headers == (("X-Id", "7"),)

    def test_json(self) -> None:
        response = Response().with_json({"a": 1}, 201)
        assert response.content_type == JSON_CONTENT_TYPE
        assert response.status == 201
        assert response.text == '{"a": 1}'

    def test_json_pretty_in_debug(self) -> None:
        response = Response(is_debug=True).with_json({"a": 1})
        assert response.text == '{\n    "a": 1\n}'

    def test_csv(self) -> None:
        response = Response().with_csv(["id", "name"], [(1, "ann"), (2, "bob")])
        assert response.content_type.startswith("text/csv")
        assert response.text.splitlines() == ["id,name", "1,ann", "2,bob"]

    def test_api_envelope(self) -> None:
        assert Response().with_api({"id": 1}).json() == {"status": 200, "data": {"id": 1}}
        assert Response().with_api(None, 204).json() == {"status": 204}

    def test_api_error_hides_debug_in_production(self) -> None:
        response = Response().with_api_error("Bad input", 422, debug_message="field x")
        assert response.status == 422
        assert response.json() == {"error": "Bad input", "status": 422}

    def test_api_error_debug_details(self) -> None:
        response = Response(is_debug=True).with_api_error(
            "Bad input", 422, extra={"field": "x"}, debug_message="field x", debug_data={"x": 1}
        )
        payload = response.json()
        assert payload["error"] == "Bad input"
        assert payload["field"] == "x"
        assert payload["_debug"]["message"] == "field x"
        assert payload["_debug"]["data"] == {"x": 1}
        assert isinstance(payload["_debug"]["stack_trace"], list)

    def test_api_error_describes_exception(self) -> None:
        try:
            raise ValueError("broken")
        except ValueError as exc:
            error = exc

        response = Response(is_debug=True).with_api_error("Oops", debug_data=error)
        exception = response.json()["_debug"]["data"]["exception"]
        assert exception["type"] == "builtins.ValueError"
        assert exception["message"] == "broken"

    def test_not_found_html(self) -> None:
        response = Response().with_not_found("No route matches /x", {"uri": "/x"})
        assert response.status == 404
        assert response.text == "Not Found"

    def test_not_found_html_debug(self) -> None:
        response = Response(is_debug=True).with_not_found("No route matches /x", {"uri": "/x"})
        assert "No route matches /x" in response.text
        assert "&quot;uri&quot;" in response.text

    def test_not_found_json(self) -> None:
        response = Response().with_content_type(JSON_CONTENT_TYPE).with_not_found("gone")
        assert response.json() == {"error": 404, "message": "Not Found"}

    def test_reason_phrase(self) -> None:
        assert Response(status=418).reason_phrase == "I'm a Teapot"
        assert Response(status=599).reason_phrase == ""


class TestDescribeException:
    def test_includes_location(self) -> None:
        try:
            raise KeyError("k")
        except KeyError as exc:
            info = describe_exception(exc)

        assert info["type"] == "builtins.KeyError"
        assert info["file"].endswith("test_http.py")
        assert info["line"] is not None
        assert len(info["trace"]) == 1
