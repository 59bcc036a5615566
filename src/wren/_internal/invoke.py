"""Invoke helpers: call sync or async callables uniformly.

Handlers, middleware, converters, and error handlers can all be ``def``
or ``async def``. Any code that calls user-provided code goes through
``invoke`` so the sync/async check lives in exactly one place.

Usage::

    from wren._internal.invoke import invoke

    result = await invoke(handler, request, response, args)
"""

import inspect
from typing import Any


async def invoke(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *func* and await the result if it's awaitable.

    A sync middleware may return the un-awaited result of ``next(...)``;
    that coroutine is awaited here as well.
    """
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
