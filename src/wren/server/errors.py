"""Error handling pipeline for wren requests.

Maps HTTPError exceptions and unexpected failures to Response objects,
using registered error handlers or sensible defaults.
"""

import logging
from collections.abc import Callable, Mapping
from http import HTTPStatus
from typing import Any

from wren.errors import HTTPError
from wren.http.request import Request
from wren.http.response import JSON_CONTENT_TYPE, Response
from wren.server.negotiation import negotiate

logger = logging.getLogger("wren.server")

type ErrorHandlers = Mapping[int | type, Callable[..., Any]]


def find_error_handler(
    error_handlers: ErrorHandlers,
    exc: BaseException,
    status: int,
) -> Callable[..., Any] | None:
    """The handler for *exc*: nearest registered exception type, then *status*."""
    for cls in type(exc).__mro__:
        handler = error_handlers.get(cls)
        if handler is not None:
            return handler
    return error_handlers.get(status)


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    response: Response,
    exc: BaseException,
) -> Response:
    """Invoke a resolved error handler.

    The exception is available as the ``exception`` request attribute,
    and to any parameter annotated with its type.
    """
    request = request.with_attribute("exception", exc)
    result = await handler(request, response, {"exception": exc})
    return negotiate(result, response)


async def handle_http_error(
    exc: HTTPError,
    request: Request,
    response: Response,
    error_handlers: ErrorHandlers,
) -> Response:
    """Map an HTTPError to a Response using registered error handlers."""
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)

    response = response.with_status(exc.status)
    handler = find_error_handler(error_handlers, exc, exc.status)
    if handler is not None:
        result = await call_error_handler(handler, request, response, exc)
        # Keep the error status unless the handler chose its own
        if result.status == 200:
            result = result.with_status(exc.status)
        return result

    if exc.status == 404:
        result = response.with_not_found(
            exc.detail or f"No route matches {request.uri}",
            {"uri": request.uri, "attributes": sorted(request.attributes)},
        )
    else:
        phrase = HTTPStatus(exc.status).phrase if exc.status in HTTPStatus else "Error"
        result = response.with_api_error(phrase, exc.status, debug_message=exc.detail)

    for name, value in exc.headers:
        result = result.with_header(name, value)
    return result


async def handle_internal_error(
    exc: Exception,
    request: Request,
    response: Response,
    error_handlers: ErrorHandlers,
    show_details: bool,
) -> Response:
    """Handle unexpected exceptions as 500 errors."""
    logger.exception("500 %s %s", request.method, request.path)

    response = response.with_status(500)
    handler = find_error_handler(error_handlers, exc, 500)
    if handler is not None:
        return await call_error_handler(handler, request, response, exc)

    if response.content_type.startswith(JSON_CONTENT_TYPE):
        return response.with_api_error(
            "Internal Server Error",
            500,
            debug_message=str(exc),
            debug_data={"exception": exc},
        )

    if show_details:
        from wren.server.debug_page import render_debug_page

        return Response(body=render_debug_page(exc, request), status=500)

    return response.with_body_string("Internal Server Error")
