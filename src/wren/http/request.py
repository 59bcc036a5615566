"""Immutable HTTP request.

Frozen metadata with async body access. Attributes are the one piece of
per-request state that grows as the request travels through middleware;
adding one returns a new ``Request`` rather than mutating this one.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from wren._internal.asgi import Receive
from wren.http.headers import Headers
from wren.http.query import QueryParams

_NO_ATTRIBUTES: Mapping[str, Any] = MappingProxyType({})


async def _empty_receive() -> dict[str, Any]:
    return {"type": "http.request", "body": b"", "more_body": False}


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata (method, path, headers, etc.) is frozen at creation.
    Body is accessed asynchronously via ``.body()``, ``.json()``, ``.text()``.

    ``attributes`` holds named values attached by middleware and by the
    router (matched route arguments, the ``route`` itself). Handler
    parameters are resolved against them by name.
    """

    method: str
    path: str
    headers: Headers = field(default_factory=Headers)
    query: QueryParams = field(default_factory=QueryParams)
    attributes: Mapping[str, Any] = _NO_ATTRIBUTES
    scheme: str = "http"
    http_version: str = "1.1"
    server: tuple[str, int] | None = None
    client: tuple[str, int] | None = None

    # Private: ASGI receive callable for body streaming
    _receive: Receive = field(default=_empty_receive, repr=False, compare=False)

    # Private: mutable cache for the body (shared across attribute copies)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # -- Attributes --

    def get_attribute(self, name: str, default: Any = None) -> Any:
        """Return the attribute *name*, or *default* when absent."""
        return self.attributes.get(name, default)

    def with_attribute(self, name: str, value: Any) -> Request:
        """Return a new Request carrying an additional attribute."""
        return self.with_attributes({name: value})

    def with_attributes(self, values: Mapping[str, Any]) -> Request:
        """Return a new Request carrying every attribute in *values*."""
        merged = {**self.attributes, **values}
        return replace(self, attributes=MappingProxyType(merged))

    def without_attribute(self, name: str) -> Request:
        """Return a new Request with *name* removed from its attributes."""
        if name not in self.attributes:
            return self
        remaining = {k: v for k, v in self.attributes.items() if k != name}
        return replace(self, attributes=MappingProxyType(remaining))

    # -- Computed properties --

    @property
    def content_type(self) -> str | None:
        """The Content-Type header value."""
        return self.headers.get("content-type")

    @property
    def url(self) -> str:
        """Request path plus query string."""
        qs = self.query.raw
        if qs:
            return f"{self.path}?{qs.decode('latin-1')}"
        return self.path

    @property
    def uri(self) -> str:
        """Absolute request URI, as best reconstructed from the scope."""
        host = self.headers.get("host")
        if host is None and self.server is not None:
            name, port = self.server
            host = name if port in (80, 443) else f"{name}:{port}"
        if host is None:
            return self.url
        return f"{self.scheme}://{host}{self.url}"

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body.

        Result is cached. The ASGI receive is consumed once, then
        the same bytes are returned on subsequent calls.
        """
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks = [chunk async for chunk in self.stream()]
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        """Stream the request body in chunks."""
        while True:
            message = await self._receive()
            body = message.get("body", b"")
            if body:
                yield body
            if not message.get("more_body", False):
                break

    async def json(self) -> Any:
        """Parse the body as JSON."""
        import json as json_module

        raw = await self.body()
        return json_module.loads(raw)

    async def text(self) -> str:
        """Read the body as text (UTF-8)."""
        raw = await self.body()
        return raw.decode("utf-8")

    # -- Factory --

    @classmethod
    def from_asgi(cls, scope: Mapping[str, Any], receive: Receive) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        server = scope.get("server")
        client = scope.get("client")
        return cls(
            method=scope["method"],
            path=scope["path"],
            headers=Headers(tuple(scope.get("headers", ()))),
            query=QueryParams(scope.get("query_string", b"")),
            scheme=scope.get("scheme", "http"),
            http_version=scope.get("http_version", "1.1"),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
            _receive=receive,
        )
