"""Route groups and the route-argument converter gate.

A group shares a pattern prefix and middleware between the routes
registered inside it. Groups may also convert raw path-captured
arguments into application values before any handler sees them::

    def load_user(value, argument, route):
        return users.get(int(value))

    with app.group("/users/{user}") as group:
        group.convert("user", load_user, required=True)
        app.get("/", show_user)

A required conversion that produces ``None`` ends the request with a 404
before the handler runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from wren._internal.invoke import invoke
from wren._internal.types import Converter, Handler
from wren.errors import ConfigurationError, RequiredConversionMissing
from wren.routing.route import RouteMatch

if TYPE_CHECKING:
    from wren.app import App
    from wren.http.request import Request
    from wren.http.response import Response

logger = logging.getLogger("wren.routing")


@dataclass(frozen=True, slots=True)
class ConverterSpec:
    """How one route argument is converted."""

    argument: str
    convert: Converter
    skip_if_none: bool = False
    required: bool = False


class RouteGroup:
    """A set of routes sharing a pattern prefix and middleware."""

    __slots__ = ("_bound", "_converters", "app", "callback", "middleware", "pattern")

    def __init__(self, pattern: str, callback: Handler | None = None) -> None:
        self.pattern = pattern
        self.callback = callback
        self.middleware: list[Any] = []
        self.app: App | None = None
        self._converters: dict[str, ConverterSpec] = {}
        self._bound = False

    def __repr__(self) -> str:
        return f"RouteGroup({self.pattern!r})"

    def __enter__(self) -> RouteGroup:
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self.app is not None:
            self.app.router.pop_group()

    def __call__(self, app: App) -> Any:
        """Run the group's registration callback against *app*.

        The callback is resolved like any handler and invoked in the
        group-registration shape, so a parameter annotated ``App``
        receives the app. Registration is synchronous: the callback must
        be a plain ``def``.
        """
        from wren.app import App

        if not isinstance(app, App):
            msg = f"RouteGroup requires a wren App, got {type(app).__name__}"
            raise ConfigurationError(msg)

        self.app = app
        if self.callback is None:
            return None
        resolved = app.resolver.resolve(self.callback)
        return resolved.call(app)

    def add_middleware(self, middleware: Any) -> RouteGroup:
        """Add middleware to every route in this group."""
        self.middleware.append(middleware)
        return self

    @property
    def converters(self) -> dict[str, ConverterSpec]:
        """Registered converters keyed by argument name."""
        return dict(self._converters)

    def convert(
        self,
        argument: str,
        converter: Converter,
        *,
        skip_if_none: bool = False,
        required: bool = False,
    ) -> RouteGroup:
        """Convert the route argument *argument* before handlers run.

        *converter* is called as ``converter(value, argument, route)`` and
        may be sync or async. With *skip_if_none*, a route that did not
        capture *argument* leaves it untouched. With *required*, a
        converter returning ``None`` raises ``RequiredConversionMissing``.

        Registering the same argument again replaces its converter.
        """
        if not self._bound:
            self.middleware.append(self._convert_arguments)
            self._bound = True

        self._converters[argument] = ConverterSpec(argument, converter, skip_if_none, required)
        return self

    async def _convert_arguments(
        self, request: Request, response: Response, next: RouteMatch
    ) -> Response:
        if not isinstance(next, RouteMatch):
            msg = "Route argument converters must run as route middleware"
            raise ConfigurationError(msg)

        for spec in self._converters.values():
            await self._convert_argument(spec, next)

        return await next(request, response)

    async def _convert_argument(self, spec: ConverterSpec, route: RouteMatch) -> None:
        value = route.get_argument(spec.argument)
        if value is None and spec.skip_if_none:
            logger.debug("Skipping converter for absent argument %r", spec.argument)
            return

        converted = await invoke(spec.convert, value, spec.argument, route)
        if converted is None and spec.required:
            logger.debug("Required argument %r did not convert", spec.argument)
            raise RequiredConversionMissing(spec.argument)

        route.set_argument(spec.argument, converted)
