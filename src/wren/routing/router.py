"""Compiled router with trie-based path matching.

Routes are registered during setup and compiled into an immutable
lookup structure when the app freezes. The router also tracks the
group stack while groups are being registered, so patterns (including
scoped middleware patterns) can be prefixed with the enclosing groups.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from wren.errors import ConfigurationError, MethodNotAllowed, NotFound
from wren.routing.pattern import Placeholder, template_regex, tokenize
from wren.routing.route import Route, RouteMatch

if TYPE_CHECKING:
    from wren.routing.group import RouteGroup

logger = logging.getLogger("wren.routing")


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route path.

    Static:     ``/users``        (is_param=False)
    Param:      ``/{id}``         (regex matches the whole segment)
    Embedded:   ``/v{version}``   (literal text around the placeholder)
    Catch-all:  ``/{rest:path}``  (consumes the remaining path)
    """

    value: str
    is_param: bool = False
    regex: re.Pattern[str] | None = None
    catch_all: str | None = None


def split_segments(path: str) -> list[str]:
    """Split *path* on ``/`` without splitting inside ``{...}``."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in path:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if char == "/" and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [p for p in parts if p]


def parse_path(path: str) -> list[PathSegment]:
    """Parse a route path string into segments.

    Examples::

        "/users"              -> [PathSegment("users")]
        "/users/{id}"         -> [PathSegment("users"), PathSegment("{id}", is_param=True, ...)]
        "/users/{id:\\d+}"     -> [..., PathSegment("{id:\\d+}", is_param=True, ...)]
        "/files/{rest:path}"  -> [..., PathSegment("{rest:path}", catch_all="rest")]
    """
    if "<" in path and ">" in path:
        msg = (
            f"Route path {path!r} uses <param> syntax. "
            "Wren expects {param} placeholders, e.g. /share/{slug}."
        )
        raise ConfigurationError(msg)

    segments: list[PathSegment] = []
    for part in split_segments(path):
        tokens = list(tokenize(part))
        if not any(isinstance(t, Placeholder) for t in tokens):
            segments.append(PathSegment(value=part))
            continue

        if len(tokens) == 1 and isinstance(tokens[0], Placeholder) and tokens[0].is_catch_all:
            segments.append(PathSegment(value=part, is_param=True, catch_all=tokens[0].name))
            continue

        try:
            regex = re.compile(template_regex(part, capture=True, named_types=True))
        except re.error as exc:
            msg = f"Invalid placeholder expression in route path {path!r}: {exc}"
            raise ConfigurationError(msg) from exc
        segments.append(PathSegment(value=part, is_param=True, regex=regex))

    for seg in segments[:-1]:
        if seg.catch_all is not None:
            msg = f"Catch-all placeholder must be the last segment in {path!r}"
            raise ConfigurationError(msg)
    return segments


class _TrieNode:
    """A node in the route trie. Mutable during compilation only."""

    __slots__ = ("catch_all", "children", "param_edges", "routes_by_method")

    def __init__(self) -> None:
        # Static segment children: "users" -> node
        self.children: dict[str, _TrieNode] = {}
        # Parameter edges, tried in registration order
        self.param_edges: list[_ParamEdge] = []
        # Catch-all edge (path placeholder)
        self.catch_all: _CatchAllEdge | None = None
        # Routes at this node, keyed by HTTP method
        self.routes_by_method: dict[str, Route] = {}


@dataclass(slots=True)
class _ParamEdge:
    """A parameter edge in the trie, keyed by its segment source."""

    source: str
    regex: re.Pattern[str]
    node: _TrieNode


@dataclass(slots=True)
class _CatchAllEdge:
    """A catch-all edge. Consumes the remaining path."""

    param_name: str
    routes_by_method: dict[str, Route] = field(default_factory=dict)


class Router:
    """Compiled router with trie-based path matching.

    Usage::

        router = Router()
        router.add(Route("/users/", handler, frozenset({"GET"})))
        router.add(Route("/users/{id:int}/", handler, frozenset({"GET"})))
        router.compile()
        match = router.match("GET", "/users/42/")
    """

    __slots__ = ("_compiled", "_default_url_segments", "_group_stack", "_root", "_routes")

    def __init__(self, default_url_segments: Mapping[str, Any] | None = None) -> None:
        self._root = _TrieNode()
        self._routes: list[Route] = []
        self._group_stack: list[RouteGroup] = []
        self._default_url_segments: dict[str, Any] = dict(default_url_segments or {})
        self._compiled = False

    # -- Groups --

    def push_group(self, group: RouteGroup) -> RouteGroup:
        """Enter *group*. Routes added until ``pop_group`` belong to it."""
        self._group_stack.append(group)
        return group

    def pop_group(self) -> RouteGroup | None:
        """Leave the innermost group."""
        return self._group_stack.pop() if self._group_stack else None

    @property
    def groups(self) -> tuple[RouteGroup, ...]:
        """The groups currently being registered, outermost first."""
        return tuple(self._group_stack)

    def prefix_pattern(self, pattern: str) -> str:
        """Prefix a relative *pattern* with every enclosing group pattern."""
        return "".join(group.pattern for group in self._group_stack) + pattern

    # -- Registration --

    def add(self, route: Route) -> Route:
        """Add a route to the router. Must be called before compile()."""
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)

        segments = parse_path(route.pattern)
        node = self._root

        for seg in segments:
            if seg.catch_all is not None:
                if node.catch_all is None:
                    node.catch_all = _CatchAllEdge(param_name=seg.catch_all)
                for method in route.methods:
                    node.catch_all.routes_by_method[method] = route
                self._routes.append(route)
                return route

            if seg.is_param:
                assert seg.regex is not None
                edge = next((e for e in node.param_edges if e.source == seg.value), None)
                if edge is None:
                    edge = _ParamEdge(source=seg.value, regex=seg.regex, node=_TrieNode())
                    node.param_edges.append(edge)
                node = edge.node
            else:
                node = node.children.setdefault(seg.value, _TrieNode())

        for method in route.methods:
            node.routes_by_method[method] = route
        self._routes.append(route)
        return route

    @property
    def routes(self) -> list[Route]:
        """All registered routes, in registration order."""
        return list(self._routes)

    def compile(self) -> None:
        """Freeze the router. No more routes can be added."""
        self._compiled = True
        logger.debug("Compiled %d routes", len(self._routes))

    # -- Matching --

    def match(self, method: str, path: str) -> RouteMatch:
        """Match a request path and method against compiled routes.

        Returns a fresh ``RouteMatch`` on success.
        Raises ``NotFound`` if no route matches the path.
        Raises ``MethodNotAllowed`` if the path matches but the method doesn't.
        """
        parts = [p for p in path.strip("/").split("/") if p]
        result = self._match_node(self._root, parts, 0, {})

        if result is None:
            raise NotFound(f"No route matches {method} {path!r}")

        routes_by_method, arguments = result
        route = routes_by_method.get(method)
        if route is None and method == "HEAD":
            route = routes_by_method.get("GET")
        if route is not None:
            return RouteMatch(route=route, arguments=arguments)

        raise MethodNotAllowed(frozenset(routes_by_method))

    def _match_node(
        self,
        node: _TrieNode,
        parts: list[str],
        index: int,
        params: dict[str, str],
    ) -> tuple[dict[str, Route], dict[str, str]] | None:
        """Recursively match path parts against the trie."""
        if index == len(parts):
            if node.routes_by_method:
                return node.routes_by_method, params
            return None

        part = parts[index]

        # 1. Static child first (exact match)
        if part in node.children:
            result = self._match_node(node.children[part], parts, index + 1, params)
            if result is not None:
                return result

        # 2. Parameter edges, in registration order
        for edge in node.param_edges:
            m = edge.regex.fullmatch(part)
            if m is None:
                continue
            result = self._match_node(edge.node, parts, index + 1, {**params, **m.groupdict()})
            if result is not None:
                return result

        # 3. Catch-all
        if node.catch_all is not None:
            remaining = "/".join(parts[index:])
            return node.catch_all.routes_by_method, {
                **params,
                node.catch_all.param_name: remaining,
            }

        return None

    # -- URL building --

    def set_default_url_segment(self, key: str, value: Any) -> None:
        """Fill *key* in every built URL unless the caller overrides it."""
        self._default_url_segments[key] = value

    def named(self, name: str) -> Route:
        """Return the route registered under *name*."""
        for route in self._routes:
            if route.name == name:
                return route
        msg = f"Named route {name!r} does not exist"
        raise ConfigurationError(msg)

    def url_for(
        self,
        name: str,
        data: Mapping[str, Any] | None = None,
        query: Mapping[str, Any] | None = None,
    ) -> str:
        """Build the path of the route named *name*.

        Placeholder values come from *data*, falling back to the default
        URL segments. *query* is appended as a query string.
        """
        route = self.named(name)
        values = {**self._default_url_segments, **(data or {})}

        parts: list[str] = []
        for token in tokenize(route.pattern):
            if isinstance(token, Placeholder):
                if token.name not in values:
                    msg = f"Missing data for URL segment {token.name!r} of route {name!r}"
                    raise ConfigurationError(msg)
                parts.append(str(values[token.name]))
            else:
                parts.append(token)

        url = "".join(parts)
        if query:
            url = f"{url}?{urlencode(query, doseq=True)}"
        return url
