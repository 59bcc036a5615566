"""Path-scoped middleware.

Wraps a middleware so it only runs for requests under a path prefix,
minus a list of exact exclusions. Outside its scope the guard passes
straight through to ``next``, so downstream middleware still runs.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from wren._internal.invoke import invoke
from wren.routing.pattern import PathPattern, compile_pattern

if TYPE_CHECKING:
    from wren.container import Container
    from wren.http.request import Request
    from wren.http.response import Response
    from wren.middleware.protocol import Next

logger = logging.getLogger("wren.middleware")


class ScopedMiddleware:
    """Run *middleware* only for paths under *pattern*.

    The inclusion pattern is prefix-matched; every exclusion must match
    the whole path. Both accept ``{name}`` / ``{name:regex}`` placeholders.

    Usage::

        app.add_middleware("/api", require_token, exclude=["/api/health"])

    Here ``/api/users`` runs ``require_token``, ``/api/health`` skips it,
    and ``/api/health/detail`` runs it again.

    The guard is immutable. The app's resolver produces the runnable
    middleware and installs it with ``with_middleware()``, which returns
    a new guard with the same scope. A wrapped middleware that declares a
    ``container`` parameter receives *container*.
    """

    __slots__ = ("_exclusions", "_inclusion", "_middleware", "container", "exclude", "pattern")

    def __init__(
        self,
        container: Container,
        pattern: str,
        middleware: Any,
        exclude: Iterable[str] | None = None,
    ) -> None:
        self.container = container
        self.pattern = pattern
        self.exclude = tuple(exclude or ())
        self._middleware = middleware
        self._inclusion: PathPattern = compile_pattern(pattern, prefix=True)
        self._exclusions: tuple[PathPattern, ...] = tuple(
            compile_pattern(spec, prefix=False) for spec in self.exclude
        )

    def __repr__(self) -> str:
        return (
            f"ScopedMiddleware({self.pattern!r}, {self._middleware!r}, "
            f"exclude={list(self.exclude)!r})"
        )

    @property
    def middleware(self) -> Any:
        """The wrapped middleware."""
        return self._middleware

    def with_middleware(self, middleware: Any) -> ScopedMiddleware:
        """Return a guard with the same scope around *middleware*."""
        guard = object.__new__(ScopedMiddleware)
        guard.container = self.container
        guard.pattern = self.pattern
        guard.exclude = self.exclude
        guard._middleware = middleware
        guard._inclusion = self._inclusion
        guard._exclusions = self._exclusions
        return guard

    def applies_to(self, path: str) -> bool:
        """Whether the wrapped middleware runs for *path*."""
        if not self._inclusion.matches(path):
            return False
        return not any(pattern.matches(path) for pattern in self._exclusions)

    async def __call__(self, request: Request, response: Response, next: Next) -> Response:
        if not self.applies_to(request.path):
            logger.debug("Skipping %r for %s", self.pattern, request.path)
            return await next(request, response)

        return await invoke(self._middleware, request, response, next)
