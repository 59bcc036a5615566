"""Wren: a small ASGI toolkit built around dependency-injected handlers.

Handlers and middleware declare what they need by parameter name, and
the resolver supplies it: the request, the response, route arguments,
request attributes, or container services.

Basic usage::

    from wren import App

    app = App()

    def show_user(response, user_id: str):
        return response.with_json({"id": user_id})

    app.get("/users/{user_id}/", show_user)
    app.add_middleware("/admin/", require_login, exclude=["/admin/login/"])
"""

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "CallableResolver",
    "ConfigurationError",
    "Container",
    "Controller",
    "HTTPError",
    "MethodNotAllowed",
    "Middleware",
    "Next",
    "NotFound",
    "Request",
    "RequiredConversionMissing",
    "Response",
    "RouteGroup",
    "RouteMatch",
    "ScopedMiddleware",
    "WrenError",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import wren`` fast while providing a clean top-level API.
    """
    if name == "App":
        from wren.app import App

        return App

    if name == "AppConfig":
        from wren.config import AppConfig

        return AppConfig

    if name == "Container":
        from wren.container import Container

        return Container

    if name == "Controller":
        from wren.controller import Controller

        return Controller

    if name == "CallableResolver":
        from wren.resolver import CallableResolver

        return CallableResolver

    if name == "Request":
        from wren.http.request import Request

        return Request

    if name == "Response":
        from wren.http.response import Response

        return Response

    if name in ("Middleware", "Next"):
        from wren.middleware import protocol as _mw

        return getattr(_mw, name)

    if name == "ScopedMiddleware":
        from wren.middleware.scoped import ScopedMiddleware

        return ScopedMiddleware

    if name in ("RouteGroup", "RouteMatch"):
        from wren import routing as _routing

        return getattr(_routing, name)

    if name in (
        "ConfigurationError",
        "HTTPError",
        "MethodNotAllowed",
        "NotFound",
        "RequiredConversionMissing",
        "WrenError",
    ):
        from wren import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
