"""Controller base class.

Routes may name a controller method instead of a function::

    class UserController(Controller):
        def __init__(self, users):          # resolved from the container
            self.users = users

        def endpoint_show(self, user_id: int):
            return self.response.with_json(self.users.get(user_id))

        async def middleware_show(self, request, response, next):
            return await next(request, response)

    app.get("/users/{user_id}/", (UserController, "show"))

For controllers the method stub is expanded: ``endpoint_<stub>`` when
the controller is called as a handler, ``middleware_<stub>`` when it is
called as middleware. Each controller class is instantiated once; the
active request and response are bound to the instance before every
call.

The binding lives in a ``ContextVar``, so it is task-local: two requests
interleaving on one event loop each see their own request through the
shared instance.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextvars import ContextVar
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from wren.http.request import Request
    from wren.http.response import Response

ENDPOINT_PREFIX = "endpoint_"
MIDDLEWARE_PREFIX = "middleware_"

# -- Per-task bindings --

_bindings: ContextVar[Mapping[int, tuple[Request, Response]]] = ContextVar(
    "wren_controller_bindings", default=MappingProxyType({})
)
"""Controller ``id`` to its active ``(request, response)`` for this task."""


class Controller:
    """Base class for controllers with derived method names."""

    def set_request_response(self, request: Request, response: Response) -> None:
        # Copy on write: child tasks inherit the mapping, never share edits
        bindings = dict(_bindings.get())
        bindings[id(self)] = (request, response)
        _bindings.set(MappingProxyType(bindings))

    @property
    def request(self) -> Request | None:
        """The request bound in the current task, if any."""
        return _bindings.get().get(id(self), (None, None))[0]

    @property
    def response(self) -> Response | None:
        """The response bound in the current task, if any."""
        return _bindings.get().get(id(self), (None, None))[1]


def is_controller(cls: Any) -> bool:
    """True if *cls* is a ``Controller`` subclass."""
    return isinstance(cls, type) and issubclass(cls, Controller)


def controller_method(stub: str, *, as_middleware: bool) -> str:
    """The method name a controller stub resolves to."""
    prefix = MIDDLEWARE_PREFIX if as_middleware else ENDPOINT_PREFIX
    return prefix + stub
