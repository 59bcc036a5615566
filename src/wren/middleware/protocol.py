"""Middleware protocol and Next type alias.

A middleware is any callable matching::

    async def my_mw(request: Request, response: Response, next: Next) -> Response: ...

No base class required. ``response`` is the response built so far;
middleware either returns a new one or delegates to ``next``. Sync
middleware is accepted too, and may return ``next(...)`` unawaited.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol

from wren.http.request import Request
from wren.http.response import Response

# The rest of the pipeline, as seen from one middleware
type Next = Callable[[Request, Response], Awaitable[Response]]


class Middleware(Protocol):
    """Protocol for wren middleware.

    Accepts both functions and callable objects::

        # Function middleware
        async def timing(request: Request, response: Response, next: Next) -> Response:
            start = time.monotonic()
            response = await next(request, response)
            elapsed = time.monotonic() - start
            return response.with_header("X-Time", f"{elapsed:.3f}")

        # Class middleware
        class RateLimiter:
            async def __call__(self, request, response, next) -> Response:
                ...
    """

    async def __call__(self, request: Request, response: Response, next: Next) -> Response: ...
