"""Route definitions and per-request route matches.

``Route`` is created during app setup and bound to its resolved handler
and middleware when the app freezes. ``RouteMatch`` is created for every
request that matches a route: it carries that request's route arguments
and doubles as the continuation handed to route-level middleware.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from wren._internal.invoke import invoke
from wren._internal.types import Handler
from wren.http.request import Request
from wren.http.response import Response
from wren.server.negotiation import negotiate

if TYPE_CHECKING:
    from wren.routing.group import RouteGroup


@dataclass(slots=True, eq=False)
class Route:
    """A registered route.

    ``pattern`` is the full pattern including any group prefixes.
    Mutable during setup (name, middleware); bound once at freeze time.
    """

    pattern: str
    handler: Handler
    methods: frozenset[str]
    name: str | None = None
    groups: tuple[RouteGroup, ...] = ()
    middleware: list[Any] = field(default_factory=list)

    # Populated by bind() at freeze time
    _endpoint: Callable[..., Any] | None = field(default=None, repr=False)
    _stack: tuple[Callable[..., Any], ...] = field(default=(), repr=False)

    def set_name(self, name: str) -> Route:
        """Name the route for ``url_for``."""
        self.name = name
        return self

    def add_middleware(self, middleware: Any) -> Route:
        """Add route-level middleware. Runs inside any group middleware."""
        self.middleware.append(middleware)
        return self

    def pending_middleware(self) -> list[Any]:
        """Every middleware this route runs, outermost first.

        Group middleware comes first (outer groups before inner ones),
        then the route's own.
        """
        layers: list[Any] = []
        for group in self.groups:
            layers.extend(group.middleware)
        layers.extend(self.middleware)
        return layers

    def bind(
        self,
        endpoint: Callable[..., Any],
        stack: tuple[Callable[..., Any], ...],
    ) -> None:
        """Attach the resolved handler and middleware stack."""
        self._endpoint = endpoint
        self._stack = stack

    @property
    def is_bound(self) -> bool:
        return self._endpoint is not None


@dataclass(slots=True, eq=False)
class RouteMatch:
    """The route context for one matched request.

    Holds the raw path-captured arguments, which converters may replace
    through ``set_argument``. Calling the match runs the next layer of
    route middleware, or the handler once the stack is exhausted, so a
    route middleware receives the match itself as ``next``.

    Every continuation derived from one match shares the same
    ``arguments`` dict.
    """

    route: Route
    arguments: dict[str, Any] = field(default_factory=dict)
    _depth: int = 0

    def get_argument(self, name: str, default: Any = None) -> Any:
        """Return the route argument *name*, or *default* when absent."""
        return self.arguments.get(name, default)

    def set_argument(self, name: str, value: Any) -> RouteMatch:
        """Replace the route argument *name*."""
        self.arguments[name] = value
        return self

    def set_arguments(self, values: Mapping[str, Any]) -> RouteMatch:
        self.arguments.update(values)
        return self

    @property
    def name(self) -> str | None:
        return self.route.name

    @property
    def pattern(self) -> str:
        return self.route.pattern

    async def __call__(self, request: Request, response: Response) -> Response:
        stack = self.route._stack
        if self._depth < len(stack):
            layer = stack[self._depth]
            following = RouteMatch(self.route, self.arguments, self._depth + 1)
            result = await invoke(layer, request, response, following)
            return negotiate(result, response)

        endpoint = self.route._endpoint
        if endpoint is None:
            msg = f"Route {self.route.pattern!r} was matched before the app was frozen"
            raise RuntimeError(msg)

        # Arguments reach the handler through ``args`` and the ``route`` attribute
        request = request.with_attribute("route", self)
        result = await invoke(endpoint, request, response, dict(self.arguments))
        return negotiate(result, response)
