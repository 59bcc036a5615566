"""Tests for wren.resolver: handler parameter resolution."""

import abc
import contextvars

import pytest

from wren.app import App
from wren.container import Container
from wren.controller import Controller, controller_method
from wren.errors import (
    ClassNotFound,
    ConfigurationError,
    MethodNotCallable,
    UnresolvableParameterError,
)
from wren.http.request import Request
from wren.http.response import Response
from wren.middleware.scoped import ScopedMiddleware
from wren.resolver import (
    CallableResolver,
    InstanceCache,
    Invocation,
    ResolvedCallable,
    ResolvedFunction,
    ResolvedMethod,
    describe,
    load_class,
)
from wren.routing.route import Route, RouteMatch

pytestmark = pytest.mark.anyio


class Widget:
    def __init__(self, label: str = "widget") -> None:
        self.label = label


class Gadget(Widget):
    pass


class Database:
    pass


def _resolver(**services) -> CallableResolver:
    return CallableResolver(Container(services))


def _request(path: str = "/") -> Request:
    return Request(method="GET", path=path)


async def _next(request: Request, response: Response) -> Response:
    return response


# ---------------------------------------------------------------------------
# Lookup chain
# ---------------------------------------------------------------------------


class TestNamedParameters:
    async def test_request_response_args(self) -> None:
        seen = {}

        def handler(request, response, args):
            seen.update(request=request, response=response, args=args)
            return response

        request, response = _request(), Response()
        await _resolver().resolve(handler)(request, response, {"id": "1"})

        assert seen == {"request": request, "response": response, "args": {"id": "1"}}

    async def test_parameter_order_is_free(self) -> None:
        def handler(args, response, request):
            return (args, response, request)

        request, response = _request(), Response()
        result = await _resolver().resolve(handler)(request, response, {})
        assert result == ({}, response, request)

    async def test_next_is_none_for_handlers(self) -> None:
        def handler(next):
            return next

        assert await _resolver().resolve(handler)(_request(), Response(), {}) is None

    async def test_next_for_middleware(self) -> None:
        def middleware(request, response, next):
            return next

        result = await _resolver().resolve(middleware)(_request(), Response(), _next)
        assert result is _next

    async def test_middleware_args_are_empty(self) -> None:
        def middleware(args):
            return args

        assert await _resolver().resolve(middleware)(_request(), Response(), _next) == {}

    async def test_active_request_beats_container_entry(self) -> None:
        stale = _request("/stale")
        resolver = _resolver(request=stale)

        def handler(request):
            return request

        active = _request("/active")
        assert await resolver.resolve(handler)(active, Response(), {}) is active

    def test_container_request_used_without_active_request(self) -> None:
        stale = _request("/stale")
        resolver = _resolver(request=stale)

        def register(request):
            return request

        assert resolver.resolve(register).call(App()) is stale

    def test_request_is_none_when_nothing_supplies_it(self) -> None:
        def register(request, response):
            return (request, response)

        assert _resolver().resolve(register).call(App()) == (None, None)


class TestAttributesAndArguments:
    async def test_request_attribute(self) -> None:
        def handler(user):
            return user

        request = _request().with_attribute("user", "ann")
        assert await _resolver().resolve(handler)(request, Response(), {}) == "ann"

    async def test_route_argument_for_route_middleware(self) -> None:
        def middleware(slug):
            return slug

        route = Route(pattern="/posts/{slug}/", handler=str, methods=frozenset({"GET"}))
        match = RouteMatch(route, {"slug": "hello"})
        assert await _resolver().resolve(middleware)(_request(), Response(), match) == "hello"

    async def test_attribute_beats_route_argument(self) -> None:
        def middleware(slug):
            return slug

        route = Route(pattern="/posts/{slug}/", handler=str, methods=frozenset({"GET"}))
        match = RouteMatch(route, {"slug": "from-route"})
        request = _request().with_attribute("slug", "from-attribute")
        assert await _resolver().resolve(middleware)(request, Response(), match) == "from-attribute"

    async def test_route_argument_for_handler(self) -> None:
        def handler(slug):
            return slug

        route = Route(pattern="/posts/{slug}/", handler=str, methods=frozenset({"GET"}))
        request = _request().with_attribute("route", RouteMatch(route, {"slug": "hello"}))
        assert await _resolver().resolve(handler)(request, Response(), {}) == "hello"

    async def test_attribute_beats_route_argument_for_handler(self) -> None:
        def handler(slug):
            return slug

        route = Route(pattern="/posts/{slug}/", handler=str, methods=frozenset({"GET"}))
        request = (
            _request()
            .with_attribute("route", RouteMatch(route, {"slug": "from-route"}))
            .with_attribute("slug", "from-attribute")
        )
        assert await _resolver().resolve(handler)(request, Response(), {}) == "from-attribute"

    async def test_none_attribute_falls_through(self) -> None:
        def handler(db):
            return db

        db = Database()
        request = _request().with_attribute("db", None)
        assert await _resolver(db=db).resolve(handler)(request, Response(), {}) is db


class TestContainerServices:
    async def test_service_by_name(self) -> None:
        db = Database()

        def handler(db):
            return db

        assert await _resolver(db=db).resolve(handler)(_request(), Response(), {}) is db

    async def test_container_is_a_service(self) -> None:
        resolver = _resolver()

        def handler(container):
            return container

        assert await resolver.resolve(handler)(_request(), Response(), {}) is resolver.container

    async def test_lazy_service_is_built(self) -> None:
        def handler(db):
            return db

        resolver = _resolver(db=lambda c: Database())
        first = await resolver.resolve(handler)(_request(), Response(), {})
        second = await resolver.resolve(handler)(_request(), Response(), {})
        assert isinstance(first, Database)
        assert first is second


class TestTypeScan:
    async def test_matches_extra_argument_by_type(self) -> None:
        widget = Widget()

        def handler(thing: Widget):
            return thing

        result = await _resolver().resolve(handler)(_request(), Response(), {"w": widget})
        assert result is widget

    async def test_subclass_matches(self) -> None:
        gadget = Gadget()

        def handler(thing: Widget):
            return thing

        result = await _resolver().resolve(handler)(_request(), Response(), {"g": gadget})
        assert result is gadget

    async def test_first_match_wins(self) -> None:
        first, second = Widget("first"), Widget("second")

        def handler(thing: Widget):
            return thing.label

        result = await _resolver().resolve(handler)(
            _request(), Response(), {"a": first, "b": second}
        )
        assert result == "first"

    async def test_optional_annotation_is_scanned(self) -> None:
        widget = Widget()

        def handler(thing: Widget | None):
            return thing

        result = await _resolver().resolve(handler)(_request(), Response(), {"w": widget})
        assert result is widget

    async def test_scalar_annotations_are_not_scanned(self) -> None:
        def handler(count: int = 0):
            return count

        assert await _resolver().resolve(handler)(_request(), Response(), {"n": 5}) == 0

    def test_group_shape_offers_app(self) -> None:
        app = App()

        def register(application: App):
            return application

        assert app.resolver.resolve(register).call(app) is app


class TestFallbacks:
    async def test_default(self) -> None:
        def handler(page: int = 1):
            return page

        assert await _resolver().resolve(handler)(_request(), Response(), {}) == 1

    async def test_nullable_annotation(self) -> None:
        def handler(page: int | None):
            return page

        assert await _resolver().resolve(handler)(_request(), Response(), {}) is None

    async def test_unannotated(self) -> None:
        def handler(page):
            return page

        assert await _resolver().resolve(handler)(_request(), Response(), {}) is None

    async def test_unresolvable(self) -> None:
        def handler(page: int):
            return page

        with pytest.raises(UnresolvableParameterError) as exc_info:
            await _resolver().resolve(handler)(_request(), Response(), {})
        assert exc_info.value.parameter == "page"
        assert "page" in str(exc_info.value)

    async def test_keyword_only_parameters(self) -> None:
        def handler(request, *, db):
            return db

        db = Database()
        assert await _resolver(db=db).resolve(handler)(_request(), Response(), {}) is db

    async def test_varargs_receive_raw_arguments(self) -> None:
        def handler(request, *rest):
            return (request, rest)

        request, response = _request(), Response()
        first, rest = await _resolver().resolve(handler)(request, response, {"id": "1"})
        assert first is request
        assert rest == (request, response, {"id": "1"})


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


class Users(Controller):
    constructed = 0

    def __init__(self, db: Database) -> None:
        type(self).constructed += 1
        self.db = db

    def endpoint_show(self, args):
        return ("endpoint", self.request.path, args)

    async def middleware_show(self, request, response, next):
        return ("middleware", await next(request, response))

    def endpoint_only(self):
        return "only"


class Plain:
    def handle(self, request):
        return request.path

    label = "not callable"


class Helpers:
    def __init__(self) -> None:
        raise AssertionError("static and class methods need no instance")

    @staticmethod
    def ping(request):
        return f"pong {request.path}"

    @classmethod
    def kind(cls, response):
        return (cls.__name__, response.status)


class Base(abc.ABC):
    @abc.abstractmethod
    def run(self): ...


class TestControllers:
    async def test_endpoint_and_middleware_methods(self) -> None:
        Users.constructed = 0
        resolver = _resolver(db=Database())
        resolved = resolver.resolve((Users, "show"))
        request, response = _request("/users/1/"), Response()

        assert isinstance(resolved, ResolvedMethod)
        assert await resolved(request, response, {"id": "1"}) == ("endpoint", "/users/1/", {"id": "1"})
        assert await resolved(request, response, _next) == ("middleware", response)

    async def test_constructed_once(self) -> None:
        Users.constructed = 0
        resolver = _resolver(db=Database())

        for _ in range(3):
            await resolver.resolve((Users, "show"))(_request(), Response(), {})
        await resolver.resolve((Users, "only"))(_request(), Response(), {})

        assert Users.constructed == 1
        assert Users in resolver.instances
        assert len(resolver.instances) == 1

    async def test_constructor_dependencies(self) -> None:
        db = Database()
        resolver = _resolver(db=db)
        await resolver.resolve((Users, "show"))(_request(), Response(), {})
        assert resolver.instances.get(Users).db is db

    async def test_request_response_set_on_instance(self) -> None:
        resolver = _resolver(db=Database())
        request, response = _request("/x/"), Response(status=201)
        await resolver.resolve((Users, "show"))(request, response, {})

        instance = resolver.instances.get(Users)
        assert instance.request is request
        assert instance.response is response

    async def test_request_response_bound_per_context(self) -> None:
        resolver = _resolver(db=Database())
        await resolver.resolve((Users, "show"))(_request("/x/"), Response(), {})

        instance = resolver.instances.get(Users)
        assert contextvars.Context().run(lambda: instance.request) is None
        assert contextvars.Context().run(lambda: instance.response) is None

    def test_derived_method_names(self) -> None:
        assert controller_method("list", as_middleware=False) == "endpoint_list"
        assert controller_method("list", as_middleware=True) == "middleware_list"

    async def test_missing_middleware_method(self) -> None:
        resolved = _resolver(db=Database()).resolve((Users, "only"))
        with pytest.raises(MethodNotCallable):
            await resolved(_request(), Response(), _next)

    def test_unknown_stub(self) -> None:
        with pytest.raises(MethodNotCallable, match="missing"):
            _resolver().resolve((Users, "missing"))

    def test_stub_is_not_prefixed_twice(self) -> None:
        with pytest.raises(MethodNotCallable):
            _resolver().resolve((Users, "endpoint_show"))


class TestPlainClasses:
    async def test_stub_used_verbatim(self) -> None:
        result = await _resolver().resolve((Plain, "handle"))(_request("/p/"), Response(), {})
        assert result == "/p/"

    def test_non_callable_attribute(self) -> None:
        with pytest.raises(MethodNotCallable, match="not callable"):
            _resolver().resolve((Plain, "label"))

    async def test_static_and_class_methods_skip_construction(self) -> None:
        resolver = _resolver()
        assert await resolver.resolve((Helpers, "ping"))(_request("/s/"), Response(), {}) == "pong /s/"
        assert await resolver.resolve((Helpers, "kind"))(_request(), Response(), {}) == ("Helpers", 200)
        assert Helpers not in resolver.instances

    async def test_abstract_class(self) -> None:
        resolved = _resolver().resolve((Base, "run"))
        with pytest.raises(ConfigurationError, match="not instantiable"):
            await resolved(_request(), Response(), {})

    async def test_dotted_path(self) -> None:
        resolved = _resolver().resolve(("wren.container:Container", "names"))
        assert await resolved(_request(), Response(), {}) == ["container"]


class TestResolve:
    def test_function(self) -> None:
        def handler(request):
            return request

        resolved = _resolver().resolve(handler)
        assert isinstance(resolved, ResolvedFunction)
        assert resolved.func is handler

    def test_already_resolved(self) -> None:
        resolver = _resolver()
        resolved = resolver.resolve(lambda request: request)
        assert resolver.resolve(resolved) is resolved

    def test_scoped_middleware(self) -> None:
        resolver = _resolver()

        def middleware(request, response, next):
            return next(request, response)

        guard = ScopedMiddleware(resolver.container, "/api", middleware, exclude=["/api/health"])
        resolved = resolver.resolve(guard)

        assert isinstance(resolved, ScopedMiddleware)
        assert resolved is not guard
        assert isinstance(resolved.middleware, ResolvedFunction)
        assert guard.middleware is middleware
        assert resolved.applies_to("/api/users")
        assert not resolved.applies_to("/api/health")

    def test_not_callable(self) -> None:
        with pytest.raises(ConfigurationError):
            _resolver().resolve(42)

    def test_unknown_class(self) -> None:
        with pytest.raises(ClassNotFound):
            _resolver().resolve(("nowhere.Missing", "show"))

    async def test_wrong_argument_count(self) -> None:
        resolved = _resolver().resolve(lambda request: request)
        with pytest.raises(TypeError):
            await resolved(_request(), Response())


class TestLoadClass:
    def test_class_passes_through(self) -> None:
        assert load_class(Widget) is Widget

    def test_dotted_and_colon_paths(self) -> None:
        from collections import OrderedDict

        assert load_class("collections.OrderedDict") is OrderedDict
        assert load_class("collections:OrderedDict") is OrderedDict

    @pytest.mark.parametrize(
        "target", ["Missing", "nowhere.Missing", "collections.Missing", "collections.namedtuple"]
    )
    def test_not_found(self, target: str) -> None:
        with pytest.raises(ClassNotFound):
            load_class(target)


class TestDescribe:
    def test_skips_varargs_and_kwargs(self) -> None:
        def handler(request, *args, db=None, **kwargs):
            pass

        signature = describe(handler)
        assert [p.name for p in signature.parameters] == ["request", "db"]
        assert signature.accepts_varargs

    def test_object_types(self) -> None:
        def handler(a: Widget, b: Widget | None, c: int, d: list[Widget], e):
            pass

        types = {p.name: p.object_type for p in describe(handler).parameters}
        assert types == {"a": Widget, "b": Widget, "c": None, "d": None, "e": None}

    def test_nullability(self) -> None:
        def handler(a: int, b: int | None, c, d: "Widget | None"):
            pass

        nullable = {p.name: p.nullable for p in describe(handler).parameters}
        assert nullable == {"a": False, "b": True, "c": True, "d": True}


class TestResolvedCallable:
    def test_base_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            ResolvedCallable(_resolver())


class TestInvocation:
    def test_group_shape(self) -> None:
        app = App()
        invocation = Invocation.from_raw((app,))
        assert invocation.request is None
        assert invocation.args == [app]
        assert invocation.extras == ((App, app),)

    def test_middleware_shape(self) -> None:
        invocation = Invocation.from_raw((_request(), Response(), _next))
        assert invocation.next is _next
        assert invocation.args == {}

    def test_none_args_become_empty(self) -> None:
        invocation = Invocation.from_raw((_request(), Response(), None))
        assert invocation.next is None
        assert invocation.args == {}


class TestInstanceCache:
    def test_first_insert_wins(self) -> None:
        cache = InstanceCache()
        first, second = Widget("first"), Widget("second")

        assert cache.add(Widget, first) is first
        assert cache.add(Widget, second) is first
        assert cache.get(Widget) is first
        assert len(cache) == 1

    def test_clear(self) -> None:
        cache = InstanceCache()
        cache.add(Widget, Widget())
        cache.clear()
        assert Widget not in cache
        assert cache.get(Widget) is None

    def test_shared_cache(self) -> None:
        cache = InstanceCache()
        first = CallableResolver(Container(), cache)
        second = CallableResolver(Container(), cache)
        assert first.instance(Widget) is second.instance(Widget)
