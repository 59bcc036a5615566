"""Wren application class.

Mutable during setup (routes, groups, middleware, error handlers).
Frozen at runtime when app.run() or __call__() is first invoked: every
handler and middleware is resolved exactly once, at that point.
"""

import inspect
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from wren._internal.asgi import Receive, Scope, Send
from wren._internal.types import ErrorHandler, Handler
from wren.config import AppConfig
from wren.container import Container
from wren.errors import ConfigurationError, HTTPError, NotFound
from wren.http.response import Response
from wren.middleware.protocol import Next
from wren.middleware.scoped import ScopedMiddleware
from wren.resolver import CallableResolver
from wren.routing.group import RouteGroup
from wren.routing.route import Route
from wren.routing.router import Router
from wren.server.handler import build_pipeline, handle_request

ALL_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")


class App:
    """The wren application.

    Mutable during setup (route registration, middleware, groups).
    Frozen at runtime when ``app.run()`` or ``__call__()`` is first invoked.

    Services live in ``app.container``. Handlers declare what they need
    by parameter name (``request``, ``response``, ``args``, a route
    argument, a service name) and the resolver supplies it.

    Thread safety:
        The setup phase is single-threaded (registration at import time).
        The freeze transition uses a Lock + double-check to ensure exactly
        one thread resolves the app, even when several ASGI workers call
        ``__call__()`` concurrently on first request.
    """

    __slots__ = (
        "_error_handlers",
        "_freeze_lock",
        "_frozen",
        "_middleware_list",
        # Compiled state (populated by _freeze)
        "_pipeline",
        "_resolved_error_handlers",
        "_shutdown_hooks",
        "_startup_hooks",
        "config",
        "container",
        "resolver",
        "router",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        container: Container | Mapping[str, Any] | None = None,
    ) -> None:
        self.config: AppConfig = config or AppConfig()
        if isinstance(container, Container):
            self.container = container
        else:
            self.container = Container(container)
        self._register_services()

        self.router: Router = self.container.get("router")
        self.resolver: CallableResolver = self.container.get("callable_resolver")

        self._middleware_list: list[Any] = []
        self._error_handlers: dict[int | type, ErrorHandler] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

        # Compiled state, set during _freeze()
        self._pipeline: Next | None = None
        self._resolved_error_handlers: dict[int | type, Callable[..., Any]] = {}

    def _register_services(self) -> None:
        """Install the framework services the container does not provide."""
        container = self.container
        defaults: dict[str, Callable[[Container], Any]] = {
            "settings": lambda c: self.config,
            "debug": lambda c: c.get("settings").debug,
            "router": lambda c: Router(c.get("settings").default_url_segments),
            "callable_resolver": lambda c: CallableResolver(c),
            "response": lambda c: c.get("settings").response_class().with_debug(c.get("debug")),
        }
        for name, build in defaults.items():
            if not container.has(name):
                container.factory(name, build)
        if not container.has("app"):
            container.set("app", self)

    # -- Route registration --

    def map(
        self,
        methods: Iterable[str],
        patterns: str | Iterable[str],
        handler: Handler,
        *,
        name: str | None = None,
    ) -> list[Route]:
        """Register *handler* for every pattern in *patterns*.

        Each pattern is checked by ``config.pattern_validator`` and
        prefixed with the enclosing groups. Returns the new routes.
        """
        self._check_not_frozen()
        if isinstance(patterns, str):
            patterns = [patterns]

        validator = self.config.pattern_validator
        method_set = frozenset(m.upper() for m in methods)
        routes: list[Route] = []
        for pattern in patterns:
            if validator is not None and not validator(pattern):
                msg = f"Pattern is invalid ({pattern})"
                raise ConfigurationError(msg)

            route = Route(
                pattern=self.router.prefix_pattern(pattern),
                handler=handler,
                methods=method_set,
                name=name,
                groups=self.router.groups,
            )
            routes.append(self.router.add(route))
        return routes

    def route(
        self,
        pattern: str,
        *,
        methods: Iterable[str] | None = None,
        name: str | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register a route handler via decorator.

        Args:
            pattern: URL pattern. Use ``{name}`` or ``{name:regex}`` for
                route arguments.
            methods: HTTP methods. Defaults to ``["GET"]``.
            name: Optional route name for ``url_for``.
        """

        def decorator(func: Handler) -> Handler:
            self.map(methods or ["GET"], pattern, func, name=name)
            return func

        return decorator

    def get(self, pattern: str, handler: Handler, *, name: str | None = None) -> Route:
        return self.map(["GET"], pattern, handler, name=name)[0]

    def post(self, pattern: str, handler: Handler, *, name: str | None = None) -> Route:
        return self.map(["POST"], pattern, handler, name=name)[0]

    def put(self, pattern: str, handler: Handler, *, name: str | None = None) -> Route:
        return self.map(["PUT"], pattern, handler, name=name)[0]

    def patch(self, pattern: str, handler: Handler, *, name: str | None = None) -> Route:
        return self.map(["PATCH"], pattern, handler, name=name)[0]

    def delete(self, pattern: str, handler: Handler, *, name: str | None = None) -> Route:
        return self.map(["DELETE"], pattern, handler, name=name)[0]

    def options(self, pattern: str, handler: Handler, *, name: str | None = None) -> Route:
        return self.map(["OPTIONS"], pattern, handler, name=name)[0]

    def any(self, pattern: str, handler: Handler, *, name: str | None = None) -> Route:
        """Register *handler* for every standard HTTP method."""
        return self.map(ALL_METHODS, pattern, handler, name=name)[0]

    def group(self, pattern: str, callback: Handler | None = None) -> RouteGroup:
        """Register a group of routes sharing *pattern* as a prefix.

        With a *callback*, the callback registers the group's routes and
        the group is closed when it returns::

            def users(app: App):
                app.get("/", list_users)
                app.get("/{user}/", show_user)

            app.group("/users", users).convert("user", load_user, required=True)

        Without one, use the group as a context manager::

            with app.group("/users") as group:
                group.add_middleware(require_login)
                app.get("/", list_users)
        """
        self._check_not_frozen()
        group = self.router.push_group(RouteGroup(pattern, callback))
        if callback is None:
            group(self)
            return group

        try:
            group(self)
        finally:
            self.router.pop_group()
        return group

    # -- URL building --

    def url_for(
        self,
        name: str,
        data: Mapping[str, Any] | None = None,
        query: Mapping[str, Any] | None = None,
    ) -> str:
        """Build the path of the route named *name*."""
        return self.router.url_for(name, data, query)

    def set_default_url_segment(self, key: str, value: Any) -> None:
        self.router.set_default_url_segment(key, value)

    # -- Middleware --

    def add_middleware(
        self,
        pattern_or_middleware: Any,
        middleware: Any = None,
        exclude: Iterable[str] | None = None,
    ) -> None:
        """Add a middleware to the pipeline.

        ``add_middleware(mw)`` runs *mw* for every request.
        ``add_middleware("/api", mw, exclude=["/api/health"])`` runs it only
        for paths under ``/api`` (prefixed with any enclosing groups),
        except the excluded ones.

        Middleware runs in registration order, outermost first.
        """
        self._check_not_frozen()
        if middleware is None:
            self._middleware_list.append(pattern_or_middleware)
            return

        pattern = self.router.prefix_pattern(pattern_or_middleware)
        self._middleware_list.append(
            ScopedMiddleware(self.container, pattern, middleware, exclude)
        )

    # -- Error handlers --

    def error(
        self,
        code_or_exception: int | type[BaseException],
    ) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler via decorator.

        Error handlers are resolved like route handlers; the exception is
        available as the ``exception`` attribute or by annotation.
        """

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    def not_found(self, message: str = "Not Found") -> None:
        """Abort the current request with a 404."""
        raise NotFound(message)

    def fail(self, message_or_exception: str | BaseException, status: int = 500) -> None:
        """Abort the current request with *status*.

        An exception is chained as the cause of the raised ``HTTPError``.
        """
        if isinstance(message_or_exception, BaseException):
            raise HTTPError(status, str(message_or_exception)) from message_or_exception
        raise HTTPError(status, message_or_exception)

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync startup hook via decorator.

        Hooks run in registration order during ASGI lifespan startup,
        before the server begins accepting HTTP requests.
        """
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync shutdown hook via decorator.

        Hooks run in registration order during ASGI lifespan shutdown,
        after the server stops accepting new requests.
        """
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Start the pounce server.

        Resolves the app, then serves it. Debug apps run a single worker
        with auto-reload.
        """
        from wren.server.dev import run_server

        self._ensure_frozen()
        run_server(
            self,
            host or self.config.host,
            port or self.config.port,
            workers=self.config.workers,
            reload=self.config.debug,
            log_level=self.config.log_level,
        )

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point.

        Handles lifespan directly, then delegates HTTP scopes to the
        request handler pipeline.
        """
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        self._ensure_frozen()
        assert self._pipeline is not None

        await handle_request(
            scope,
            receive,
            send,
            pipeline=self._pipeline,
            response=self.container.get("response"),
            error_handlers=self._resolved_error_handlers,
            show_details=self.config.show_error_details,
        )

    async def _handle_lifespan(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol.

        Freezes the app at startup (before the first HTTP request), then
        runs registered startup/shutdown hooks and signals completion
        back to the server.
        """
        self._ensure_frozen()

        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    for hook in self._startup_hooks:
                        result = hook()
                        if inspect.isawaitable(result):
                            await result
                except Exception as exc:
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                for hook in self._shutdown_hooks:
                    result = hook()
                    if inspect.isawaitable(result):
                        await result
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Resolve every handler and middleware, then compile the router.

        MUST only be called while holding _freeze_lock.
        """
        resolve = self.resolver.resolve

        for route in self.router.routes:
            stack = tuple(resolve(mw) for mw in route.pending_middleware())
            route.bind(resolve(route.handler), stack)
        self.router.compile()

        middleware = tuple(resolve(mw) for mw in self._middleware_list)
        self._pipeline = build_pipeline(self.router, middleware)
        self._resolved_error_handlers = {
            key: resolve(handler) for key, handler in self._error_handlers.items()
        }
        self._frozen = True

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes, groups, and middleware before calling app.run()."
            )
            raise RuntimeError(msg)

    @property
    def response(self) -> Response:
        """The base response every request starts from."""
        return self.container.get("response")
