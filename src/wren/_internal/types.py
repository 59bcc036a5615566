"""Shared type aliases used across wren modules."""

from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeAlias

# Route handler, middleware, or (class, method) pair before resolution
Handler: TypeAlias = Callable[..., Any] | tuple[type | str, str]

# Error handler, resolved like any handler
ErrorHandler: TypeAlias = Callable[..., Any]

# Route argument converter: (value, argument, route) -> converted value
Converter: TypeAlias = Callable[[Any, str, Any], Any]

# Extra positional arguments passed to a resolved callable: route
# arguments for handlers, ``[app]`` for group registration
ExtraArgs: TypeAlias = Mapping[str, Any] | Sequence[Any]
