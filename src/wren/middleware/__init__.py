"""Middleware: Protocol-based, no inheritance required.

A middleware is any callable matching:
    async def mw(request: Request, response: Response, next: Next) -> Response

Built-in middleware:
    ScopedMiddleware -- Run another middleware only under a path prefix
"""

from wren.middleware.protocol import Middleware, Next
from wren.middleware.scoped import ScopedMiddleware

__all__ = [
    "Middleware",
    "Next",
    "ScopedMiddleware",
]
