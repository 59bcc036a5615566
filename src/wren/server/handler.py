"""ASGI handler: translates ASGI scope/messages to wren types.

The only component that touches raw ASGI directly. Converts scope dicts
to typed Request objects, dispatches through middleware and routing,
and sends the Response back through ASGI send().
"""

from collections.abc import Callable
from typing import Any

from wren._internal.asgi import Receive, Scope, Send
from wren._internal.invoke import invoke
from wren.errors import HTTPError
from wren.http.request import Request
from wren.http.response import Response
from wren.middleware.protocol import Next
from wren.routing.router import Router
from wren.server.errors import ErrorHandlers, handle_http_error, handle_internal_error
from wren.server.negotiation import negotiate
from wren.server.sender import send_response


def build_pipeline(
    router: Router,
    middleware: tuple[Callable[..., Any], ...],
) -> Next:
    """Wrap app middleware around route dispatch, outermost first."""

    async def dispatch(request: Request, response: Response) -> Response:
        match = router.match(request.method, request.path)
        return await match(request.with_attribute("route", match), response)

    handler: Next = dispatch
    for mw in reversed(middleware):

        async def make_next(
            request: Request,
            response: Response,
            _mw: Any = mw,
            _next: Next = handler,
        ) -> Response:
            result = await invoke(_mw, request, response, _next)
            return negotiate(result, response)

        handler = make_next
    return handler


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    pipeline: Next,
    response: Response,
    error_handlers: ErrorHandlers,
    show_details: bool,
) -> None:
    """Process a single HTTP request through the full pipeline.

    *response* is the app's base response; every request starts from it.
    """
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)

    try:
        result = await pipeline(request, response)
    except HTTPError as exc:
        result = await handle_http_error(exc, request, response, error_handlers)
    except Exception as exc:
        result = await handle_internal_error(exc, request, response, error_handlers, show_details)

    await send_response(result, send, head=request.method == "HEAD")
