"""HTTP response with chainable .with_*() transformation API.

Each transformation returns a new Response. Immutable by convention,
built incrementally by design.

Beyond the basic status/header transforms, ``Response`` knows how to
render JSON, CSV, and the ``{"status": ..., "data": ...}`` API envelope.
A response created for a debug app (``is_debug=True``) pretty-prints
JSON and attaches ``_debug`` details to error envelopes; a production
response never leaks them.
"""

from __future__ import annotations

import csv
import io
import json as json_module
import traceback
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from http import HTTPStatus
from typing import Any

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response built through immutable transformations.

    Construct with a body, then chain ``.with_*()`` calls to set
    status, headers, and content. Each call returns a new ``Response``.
    """

    body: str | bytes = ""
    status: int = 200
    content_type: str = "text/html; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()
    is_debug: bool = False

    # -- Chainable transformations --

    def with_status(self, status: int) -> Response:
        """Return a new Response with a different status code."""
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        """Return a new Response with an additional header."""
        return replace(self, headers=(*self.headers, (name, value)))

    def with_headers(self, headers: Mapping[str, str]) -> Response:
        """Return a new Response with additional headers."""
        new = tuple(headers.items())
        return replace(self, headers=(*self.headers, *new))

    def with_content_type(self, content_type: str) -> Response:
        """Return a new Response with a different content type."""
        return replace(self, content_type=content_type)

    def with_body_string(self, body: str) -> Response:
        """Return a new Response with *body* as its entire body."""
        return replace(self, body=body)

    def with_debug(self, is_debug: bool) -> Response:
        return replace(self, is_debug=is_debug)

    # -- Content helpers --

    def with_json(self, data: Any, status: int | None = None) -> Response:
        """Return a JSON response. Pretty-printed when ``is_debug``."""
        indent = 4 if self.is_debug else None
        body = json_module.dumps(data, indent=indent, default=str)
        response = replace(self, body=body, content_type=JSON_CONTENT_TYPE)
        if status is not None:
            response = response.with_status(status)
        return response

    def with_csv(
        self,
        headers: Sequence[Any],
        rows: Iterable[Sequence[Any]],
        status: int | None = None,
    ) -> Response:
        """Return a CSV response with a header row followed by *rows*."""
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(headers)
        writer.writerows(rows)
        response = replace(
            self, body=buffer.getvalue(), content_type="text/csv; charset=utf-8"
        )
        if status is not None:
            response = response.with_status(status)
        return response

    def with_api(self, data: Any, status: int | None = None) -> Response:
        """Wrap *data* in the API envelope ``{"status": ..., "data": ...}``."""
        return self._api(data, None, status)

    def with_api_error(
        self,
        error: str,
        status: int = 500,
        extra: Mapping[str, Any] | None = None,
        debug_message: str = "",
        debug_data: Any = None,
    ) -> Response:
        """Return an API error envelope.

        ``debug_message`` and ``debug_data`` are only included (under
        ``_debug``) when the response is in debug mode.
        """
        payload: dict[str, Any] = {"error": error}
        payload.update(extra or {})
        payload.update(self._debug_payload(debug_message, debug_data))
        return self._api(None, payload, status)

    def with_not_found(self, debug_message: str = "", debug_data: Any = None) -> Response:
        """Return a 404 rendered for this response's content type.

        JSON responses get an ``{"error": 404, "message": "Not Found"}``
        body; HTML responses get the reason phrase, or a small debug page
        with *debug_message* and *debug_data* in debug mode.
        """
        response = self.with_status(404)
        phrase = response.reason_phrase
        if self.content_type.startswith(JSON_CONTENT_TYPE):
            payload: dict[str, Any] = {"error": 404, "message": phrase}
            payload.update(self._debug_payload(debug_message, debug_data))
            return response.with_json(payload)

        if self.is_debug:
            from html import escape

            body = f"<p>{escape(debug_message)}</p>"
            if debug_data is not None:
                rendered = json_module.dumps(debug_data, indent=4, default=str)
                body += f"<pre>{escape(rendered)}</pre>"
            return response.with_body_string(body)

        return response.with_body_string(phrase)

    def _api(
        self, data: Any, extra: Mapping[str, Any] | None, status: int | None
    ) -> Response:
        payload: dict[str, Any] = dict(extra or {})
        payload["status"] = status if status is not None else self.status
        if data is not None:
            payload["data"] = data
        return self.with_json(payload, status)

    def _debug_payload(self, message: str, data: Any) -> dict[str, Any]:
        if not self.is_debug:
            return {}
        if not message and data in (None, [], {}):
            return {}
        if isinstance(data, BaseException):
            data = {"exception": data}
        if isinstance(data, Mapping) and isinstance(data.get("exception"), BaseException):
            data = {**data, "exception": describe_exception(data["exception"])}
        # Drop this frame and its caller from the reported stack
        stack = traceback.format_stack()[:-2]
        return {"_debug": {"message": message, "data": data, "stack_trace": stack}}

    # -- Body helpers --

    @property
    def reason_phrase(self) -> str:
        try:
            return HTTPStatus(self.status).phrase
        except ValueError:
            return ""

    @property
    def body_bytes(self) -> bytes:
        """Body as bytes."""
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body

    @property
    def text(self) -> str:
        """Body as string."""
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body

    def json(self) -> Any:
        """Parse the body as JSON."""
        return json_module.loads(self.body_bytes)


def describe_exception(exc: BaseException) -> dict[str, Any]:
    """Flatten an exception into JSON-friendly debug data."""
    frames = traceback.extract_tb(exc.__traceback__)
    last = frames[-1] if frames else None
    return {
        "type": f"{type(exc).__module__}.{type(exc).__qualname__}",
        "message": str(exc),
        "file": last.filename if last else None,
        "line": last.lineno if last else None,
        "trace": [f"{f.filename}:{f.lineno} in {f.name}" for f in frames],
    }
