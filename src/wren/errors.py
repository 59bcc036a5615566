"""Wren exception hierarchy.

Shared across the resolver, router, middleware, and app so every module
raises and catches the same types.
"""

from dataclasses import dataclass


class WrenError(Exception):
    """Base for all wren-specific errors."""


class ConfigurationError(WrenError):
    """Raised when the app is wired incorrectly.

    Covers bad route patterns, unknown handler classes or methods, and
    services that were never registered. These are programmer errors:
    they surface immediately and are never retried.
    """


class ClassNotFound(ConfigurationError):  # noqa: N818
    """A ``(class, method)`` handler names a class that cannot be imported."""

    def __init__(self, class_name: str) -> None:
        self.class_name = class_name
        super().__init__(f'Controller "{class_name}" does not exist')


class MethodNotCallable(ConfigurationError):  # noqa: N818
    """A ``(class, method)`` handler names a missing or non-callable method."""

    def __init__(self, class_name: str, method: str, detail: str = "") -> None:
        self.class_name = class_name
        self.method = method
        super().__init__(detail or f'Unknown method "{method}" on class {class_name}')


class ServiceNotFound(ConfigurationError, KeyError):  # noqa: N818
    """The container has no entry under the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Service {name!r} is not registered in the container")

    def __str__(self) -> str:
        return str(self.args[0])


class UnresolvableParameterError(ConfigurationError):
    """No source in the resolution chain could supply a handler parameter."""

    def __init__(self, parameter: str, target: str = "") -> None:
        self.parameter = parameter
        self.target = target
        where = f" of {target}" if target else ""
        super().__init__(f'Cannot resolve parameter "{parameter}"{where}')


@dataclass(frozen=True, slots=True)
class HTTPError(WrenError):
    """An error that maps directly to an HTTP status code.

    Raised by the router, converters, or handlers. The ASGI handler
    catches these and dispatches to the matching ``@app.error()`` handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404: no route matched, or a handler could not load its subject."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class RequiredConversionMissing(NotFound):  # noqa: N818
    """404: a required route-argument converter produced no value.

    This is the routine failure of the conversion gate: ``/items/{id}``
    with an id that does not load. ``argument`` names the offending
    route argument for diagnostics.
    """

    argument: str

    def __init__(self, argument: str) -> None:
        super().__init__(f'Required value "{argument}" not loaded')
        object.__setattr__(self, "argument", argument)


class MethodNotAllowed(HTTPError):  # noqa: N818
    """405: route exists but not for this HTTP method.

    Includes an ``Allow`` header listing the valid methods.
    """

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        default_detail = f"Method not allowed. Allowed methods: {allow_value}"
        super().__init__(
            status=405,
            detail=detail or default_detail,
            headers=(("Allow", allow_value),),
        )
