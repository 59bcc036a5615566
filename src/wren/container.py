"""Service container.

A small named registry. Values are stored as-is; callables registered
with ``factory()`` (or assigned through ``container[name] = ...``) are
called with the container on first access and their result is shared
from then on. Use ``protect()`` to store a callable as a plain value.

The container registers itself as ``"container"`` so handlers and
middleware can declare a ``container`` parameter.
"""

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from wren.errors import ServiceNotFound

logger = logging.getLogger("wren.resolver")

type ServiceFactory = Callable[[Container], Any]


class _Factory:
    """Marks a lazily-built shared service."""

    __slots__ = ("build",)

    def __init__(self, build: ServiceFactory) -> None:
        self.build = build


class Container:
    """Named service registry with lazily-built shared services.

    Usage::

        container = Container({"db_url": "sqlite://"})
        container["db"] = lambda c: connect(c["db_url"])
        container.protect("hasher", hash_password)

        container.has("db")   # True
        container.get("db")   # built once, then shared

    Subclasses override ``register_default_services()`` to install their
    own services at construction time.
    """

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = {}
        self._lock = threading.RLock()
        self._values["container"] = self
        for name, value in (values or {}).items():
            self[name] = value
        self.register_default_services()

    def register_default_services(self) -> None:
        """Hook for subclasses. Called once at the end of ``__init__``."""

    # -- Registration --

    def set(self, name: str, value: Any) -> None:
        """Store *value* under *name* as-is."""
        self._values[name] = value

    def factory(self, name: str, build: ServiceFactory) -> None:
        """Build the service *name* lazily with ``build(container)``."""
        self._values[name] = _Factory(build)

    def protect(self, name: str, value: Callable[..., Any]) -> None:
        """Store the callable *value* itself, not the result of calling it."""
        self._values[name] = value

    @staticmethod
    def callable_to_generator(value: Callable[..., Any]) -> ServiceFactory:
        """Wrap *value* in a factory that returns it unchanged.

        For callables that must be registered through ``container[name]``
        but should be handed out as-is.
        """

        def build(container: Container) -> Callable[..., Any]:
            return value

        return build

    # -- Lookup --

    def has(self, name: str) -> bool:
        return name in self._values

    def get(self, name: str) -> Any:
        """Return the service *name*, building it on first access.

        Raises ``ServiceNotFound`` if nothing is registered under *name*.
        """
        try:
            value = self._values[name]
        except KeyError:
            raise ServiceNotFound(name) from None

        if not isinstance(value, _Factory):
            return value

        with self._lock:
            current = self._values[name]
            if isinstance(current, _Factory):
                logger.debug("Building service %r", name)
                current = current.build(self)
                self._values[name] = current
        return current

    def names(self) -> list[str]:
        """Registered service names, in registration order."""
        return list(self._values)

    # -- Mapping access --

    def __getitem__(self, name: str) -> Any:
        return self.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        if callable(value) and not isinstance(value, type):
            self.factory(name, value)
        else:
            self.set(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)
