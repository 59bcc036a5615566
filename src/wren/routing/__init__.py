"""Routing: path patterns, the route table, and route groups."""

from wren.routing.group import ConverterSpec, RouteGroup
from wren.routing.pattern import compile_pattern, matches
from wren.routing.route import Route, RouteMatch
from wren.routing.router import Router

__all__ = [
    "ConverterSpec",
    "Route",
    "RouteGroup",
    "RouteMatch",
    "Router",
    "compile_pattern",
    "matches",
]
