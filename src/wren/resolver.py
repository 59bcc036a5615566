"""Callable resolver: dependency injection for handlers and middleware.

Every handler, middleware, error handler, and group callback passes
through ``CallableResolver.resolve()`` once, when the app freezes. The
result is a ``ResolvedCallable`` that accepts the pipeline's raw calling
convention and calls the target with one value per declared parameter.

Parameter values are looked up by name, in order:

1. ``request``   the active request (else the container's ``request``)
2. ``response``  the active response (else the container's ``response``)
3. ``next``      the continuation, or ``None`` for handlers
4. ``args``      the raw extra arguments (route arguments for handlers)
5. a request attribute with the same name
6. a route argument with the same name, from ``next`` when it is a
   ``RouteMatch`` or else from the ``route`` request attribute
7. a container service with the same name
8. the first extra argument whose type matches the parameter's class
9. the parameter's default
10. ``None``, if the annotation allows it (or there is none)

Anything else raises ``UnresolvableParameterError``. Signatures are
inspected once per target, never per request.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import threading
import types
import typing
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from wren._internal.invoke import invoke
from wren._internal.types import ExtraArgs
from wren.controller import controller_method, is_controller
from wren.errors import (
    ClassNotFound,
    ConfigurationError,
    MethodNotCallable,
    UnresolvableParameterError,
)
from wren.middleware.scoped import ScopedMiddleware
from wren.routing.route import RouteMatch

if TYPE_CHECKING:
    from wren.container import Container
    from wren.http.request import Request
    from wren.http.response import Response

logger = logging.getLogger("wren.resolver")

# Annotations that never trigger the extra-argument type scan
SCALAR_TYPES: frozenset[type] = frozenset(
    {str, int, float, bool, bytes, complex, dict, list, tuple, set, frozenset, object}
)

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


# ---------------------------------------------------------------------------
# Parameter descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParameterSpec:
    """What the resolver needs to know about one declared parameter."""

    name: str
    kind: inspect._ParameterKind
    annotation: Any = inspect.Parameter.empty
    object_type: type | None = None
    has_default: bool = False
    default: Any = None
    nullable: bool = True

    @property
    def positional(self) -> bool:
        return self.kind in _POSITIONAL

    @classmethod
    def from_parameter(cls, parameter: inspect.Parameter) -> ParameterSpec:
        annotation = parameter.annotation
        has_default = parameter.default is not inspect.Parameter.empty
        return cls(
            name=parameter.name,
            kind=parameter.kind,
            annotation=annotation,
            object_type=_object_type(annotation),
            has_default=has_default,
            default=parameter.default if has_default else None,
            nullable=_allows_none(annotation),
        )


@dataclass(frozen=True, slots=True)
class CallableSignature:
    """The declared parameters of a target, minus ``*args`` / ``**kwargs``."""

    parameters: tuple[ParameterSpec, ...]
    accepts_varargs: bool = False


def _union_members(annotation: Any) -> tuple[Any, ...] | None:
    if isinstance(annotation, types.UnionType) or typing.get_origin(annotation) is typing.Union:
        return typing.get_args(annotation)
    return None


def _object_type(annotation: Any) -> type | None:
    """The class to scan extra arguments for, if *annotation* names one."""
    if annotation is inspect.Parameter.empty:
        return None
    members = _union_members(annotation)
    if members is not None:
        classes = [m for m in members if m is not type(None)]
        if len(classes) != 1:
            return None
        annotation = classes[0]

    if not isinstance(annotation, type) or typing.get_origin(annotation) is not None:
        return None
    if annotation in SCALAR_TYPES:
        return None
    return annotation


def _allows_none(annotation: Any) -> bool:
    if annotation is inspect.Parameter.empty or annotation is Any:
        return True
    if annotation is None or annotation is type(None):
        return True
    if isinstance(annotation, str):
        # Unevaluated forward reference
        compact = annotation.replace(" ", "")
        return (
            compact.endswith("|None")
            or compact.startswith("None|")
            or compact.startswith("Optional[")
        )
    members = _union_members(annotation)
    return members is not None and type(None) in members


def describe(func: Callable[..., Any], *, skip_first: bool = False) -> CallableSignature:
    """Inspect *func* once and build its ``CallableSignature``.

    With *skip_first*, the first parameter (``self`` of an unbound method)
    is dropped.
    """
    try:
        signature = inspect.signature(func, eval_str=True)
    except NameError:
        # Annotations that only exist under TYPE_CHECKING stay strings
        signature = inspect.signature(func)

    parameters = list(signature.parameters.values())
    if skip_first:
        parameters = parameters[1:]

    specs: list[ParameterSpec] = []
    accepts_varargs = False
    for parameter in parameters:
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            accepts_varargs = True
        elif parameter.kind is not inspect.Parameter.VAR_KEYWORD:
            specs.append(ParameterSpec.from_parameter(parameter))
    return CallableSignature(tuple(specs), accepts_varargs)


# ---------------------------------------------------------------------------
# Call context
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Invocation:
    """The context of one call to a resolved target.

    ``extras`` is ``args`` flattened into ``(type, value)`` pairs for the
    type scan.
    """

    request: Request | None = None
    response: Response | None = None
    next: Callable[..., Any] | None = None
    args: ExtraArgs = field(default_factory=dict)
    extras: tuple[tuple[type, Any], ...] = ()

    @classmethod
    def with_args(
        cls,
        request: Request | None,
        response: Response | None,
        next: Callable[..., Any] | None,
        args: ExtraArgs,
    ) -> Invocation:
        values: Iterable[Any] = args.values() if isinstance(args, Mapping) else args
        extras = tuple((type(value), value) for value in values)
        return cls(request, response, next, args, extras)

    @classmethod
    def from_raw(cls, raw: tuple[Any, ...]) -> Invocation:
        """Read the pipeline's raw calling convention.

        ``(app,)`` is a group registration: no request or response, and the
        app is the only extra argument. Anything else is
        ``(request, response, next_or_args)``, where a callable third value
        is the continuation and anything else is the extra arguments.
        """
        from wren.app import App

        if raw and isinstance(raw[0], App):
            return cls.with_args(None, None, None, [raw[0]])

        if len(raw) != 3:
            msg = (
                f"Resolved callables take (request, response, next_or_args) or (app,), "
                f"got {len(raw)} arguments"
            )
            raise TypeError(msg)

        request, response, next_or_args = raw
        if callable(next_or_args):
            return cls.with_args(request, response, next_or_args, {})
        return cls.with_args(request, response, None, next_or_args if next_or_args is not None else {})


def _route_match(invocation: Invocation) -> RouteMatch | None:
    """The route context of *invocation*: ``next`` for route middleware,
    the ``route`` request attribute for handlers."""
    if isinstance(invocation.next, RouteMatch):
        return invocation.next
    if invocation.request is not None:
        match = invocation.request.get_attribute("route")
        if isinstance(match, RouteMatch):
            return match
    return None


# ---------------------------------------------------------------------------
# Instance cache
# ---------------------------------------------------------------------------


class InstanceCache:
    """One instance per class, for the lifetime of a resolver.

    Construction happens outside the lock. When two requests race to build
    the same class, the first insert wins and the other instance is
    discarded.
    """

    __slots__ = ("_instances", "_lock")

    def __init__(self) -> None:
        self._instances: dict[type, Any] = {}
        self._lock = threading.Lock()

    def get(self, cls: type) -> Any | None:
        return self._instances.get(cls)

    def add(self, cls: type, instance: Any) -> Any:
        """Store *instance* unless one exists; return the cached instance."""
        with self._lock:
            return self._instances.setdefault(cls, instance)

    def __contains__(self, cls: object) -> bool:
        return cls in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    def clear(self) -> None:
        with self._lock:
            self._instances.clear()


# ---------------------------------------------------------------------------
# Resolved targets
# ---------------------------------------------------------------------------


class ResolvedCallable(ABC):
    """A target ready to be called with the pipeline's raw arguments.

    Awaiting ``resolved(request, response, next_or_args)`` resolves every
    declared parameter and calls the target, awaiting it if needed.
    ``resolved.call(...)`` does the same synchronously, for group
    registration.
    """

    __slots__ = ("resolver",)

    def __init__(self, resolver: CallableResolver) -> None:
        self.resolver = resolver

    @property
    @abstractmethod
    def name(self) -> str:
        """Dotted name of the target, used in error messages."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    @abstractmethod
    def select(self, invocation: Invocation) -> tuple[Callable[..., Any], CallableSignature]:
        """Pick the concrete callable and signature for *invocation*."""

    def prepare(self, *raw: Any) -> tuple[Callable[..., Any], list[Any], dict[str, Any]]:
        invocation = Invocation.from_raw(raw)
        func, signature = self.select(invocation)
        args, kwargs = self.resolver.arguments(signature, invocation, self.name)
        if signature.accepts_varargs:
            args.extend((invocation.request, invocation.response, invocation.args))
        return func, args, kwargs

    async def __call__(self, *raw: Any) -> Any:
        func, args, kwargs = self.prepare(*raw)
        return await invoke(func, *args, **kwargs)

    def call(self, *raw: Any) -> Any:
        func, args, kwargs = self.prepare(*raw)
        result = func(*args, **kwargs)
        if inspect.iscoroutine(result):
            result.close()
            msg = f"{self.name} must be synchronous when called during registration"
            raise ConfigurationError(msg)
        return result


class ResolvedFunction(ResolvedCallable):
    """A plain callable: function, bound method, or object with ``__call__``."""

    __slots__ = ("func", "signature")

    def __init__(self, resolver: CallableResolver, func: Callable[..., Any]) -> None:
        super().__init__(resolver)
        self.func = func
        self.signature = describe(func)

    @property
    def name(self) -> str:
        return getattr(self.func, "__qualname__", None) or type(self.func).__qualname__

    def select(self, invocation: Invocation) -> tuple[Callable[..., Any], CallableSignature]:
        return self.func, self.signature


@dataclass(frozen=True, slots=True)
class _Method:
    name: str
    is_bound_to_class: bool  # staticmethod or classmethod
    signature: CallableSignature


class ResolvedMethod(ResolvedCallable):
    """A ``(class, method_stub)`` pair.

    Controller classes pick ``endpoint_<stub>`` or ``middleware_<stub>`` per
    call; other classes use the stub verbatim.
    """

    __slots__ = ("cls", "is_controller", "methods", "stub")

    def __init__(self, resolver: CallableResolver, cls: type, stub: str) -> None:
        super().__init__(resolver)
        self.cls = cls
        self.stub = stub
        self.is_controller = is_controller(cls)
        self.methods: dict[str, _Method] = {}

        if self.is_controller:
            candidates = [
                controller_method(stub, as_middleware=False),
                controller_method(stub, as_middleware=True),
            ]
        else:
            candidates = [stub]

        for method_name in candidates:
            method = self._inspect(method_name)
            if method is not None:
                self.methods[method_name] = method

        if not self.methods:
            raise MethodNotCallable(cls.__qualname__, stub)

    @property
    def name(self) -> str:
        return f"{self.cls.__qualname__}.{self.stub}"

    def _inspect(self, method_name: str) -> _Method | None:
        try:
            raw = inspect.getattr_static(self.cls, method_name)
        except AttributeError:
            return None

        if isinstance(raw, staticmethod | classmethod):
            func = getattr(self.cls, method_name)
            return _Method(method_name, True, describe(func))

        if not callable(raw):
            raise MethodNotCallable(
                self.cls.__qualname__,
                self.stub,
                f'Method "{self.stub}" is not callable on {self.cls.__qualname__}',
            )
        return _Method(method_name, False, describe(raw, skip_first=True))

    def select(self, invocation: Invocation) -> tuple[Callable[..., Any], CallableSignature]:
        if self.is_controller:
            method_name = controller_method(self.stub, as_middleware=invocation.next is not None)
        else:
            method_name = self.stub

        method = self.methods.get(method_name)
        if method is None:
            raise MethodNotCallable(self.cls.__qualname__, self.stub)

        if method.is_bound_to_class:
            return getattr(self.cls, method_name), method.signature

        instance = self.resolver.instance(self.cls, invocation)
        if self.is_controller and invocation.request is not None and invocation.response is not None:
            instance.set_request_response(invocation.request, invocation.response)
        return getattr(instance, method_name), method.signature


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def load_class(target: type | str) -> type:
    """Return *target* itself, or import it from ``"pkg.module.Class"``.

    ``"pkg.module:Class"`` is accepted as well. Raises ``ClassNotFound``.
    """
    if isinstance(target, type):
        return target

    module_name, sep, attr = target.partition(":")
    if not sep:
        module_name, _, attr = target.rpartition(".")
    if not module_name or not attr:
        raise ClassNotFound(target)

    try:
        module = importlib.import_module(module_name)
    except ImportError:
        raise ClassNotFound(target) from None

    cls = getattr(module, attr, None)
    if not isinstance(cls, type):
        raise ClassNotFound(target)
    return cls


class CallableResolver:
    """Turns handler references into ``ResolvedCallable`` objects.

    One resolver lives as long as its app. It owns the instance cache, so
    every class-based target is constructed at most once.

    Usage::

        resolver = CallableResolver(container)
        handler = resolver.resolve((UserController, "show"))
        response = await handler(request, response, {"user_id": "42"})
    """

    __slots__ = ("_constructors", "container", "instances")

    def __init__(self, container: Container, cache: InstanceCache | None = None) -> None:
        self.container = container
        self.instances = cache if cache is not None else InstanceCache()
        self._constructors: dict[type, CallableSignature] = {}

    def resolve(self, target: Any) -> Any:
        """Resolve *target* into something the pipeline can call.

        - ``ScopedMiddleware``: its wrapped middleware is resolved and a new
          guard around the result is returned.
        - ``(class_or_dotted_path, method_stub)``: a ``ResolvedMethod``.
        - any other callable: a ``ResolvedFunction``.

        Already-resolved targets are returned unchanged.
        """
        if isinstance(target, ResolvedCallable):
            return target

        if isinstance(target, ScopedMiddleware):
            return target.with_middleware(self.resolve(target.middleware))

        if isinstance(target, tuple) and len(target) == 2 and isinstance(target[1], str):
            class_ref, stub = target
            return ResolvedMethod(self, load_class(class_ref), stub)

        if not callable(target):
            msg = f"Cannot resolve {target!r}: expected a callable or a (class, method) pair"
            raise ConfigurationError(msg)

        return ResolvedFunction(self, target)

    # -- Parameters --

    def arguments(
        self,
        signature: CallableSignature,
        invocation: Invocation,
        target: str = "",
    ) -> tuple[list[Any], dict[str, Any]]:
        """Resolve every parameter in *signature* for *invocation*."""
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for spec in signature.parameters:
            value = self.resolve_parameter(spec, invocation, target)
            if spec.positional:
                args.append(value)
            else:
                kwargs[spec.name] = value
        return args, kwargs

    def resolve_parameter(
        self,
        spec: ParameterSpec,
        invocation: Invocation,
        target: str = "",
    ) -> Any:
        """Find the value for one parameter."""
        name = spec.name

        if name == "request":
            if invocation.request is not None:
                return invocation.request
            return self._service_or_none("request")
        if name == "response":
            if invocation.response is not None:
                return invocation.response
            return self._service_or_none("response")
        if name == "next":
            return invocation.next
        if name == "args":
            return invocation.args

        if invocation.request is not None:
            value = invocation.request.get_attribute(name)
            if value is not None:
                return value

        match = _route_match(invocation)
        if match is not None:
            value = match.get_argument(name)
            if value is not None:
                return value

        if self.container.has(name):
            return self.container.get(name)

        if spec.object_type is not None:
            for tag, value in invocation.extras:
                if issubclass(tag, spec.object_type):
                    return value

        if spec.has_default:
            return spec.default
        if spec.nullable:
            return None

        raise UnresolvableParameterError(name, target)

    def _service_or_none(self, name: str) -> Any:
        return self.container.get(name) if self.container.has(name) else None

    # -- Instances --

    def instance(self, cls: type, invocation: Invocation | None = None) -> Any:
        """Return the shared instance of *cls*, constructing it if needed.

        Constructor parameters resolve through the same chain as handler
        parameters, with the invocation's request and response but no
        continuation or extra arguments.
        """
        cached = self.instances.get(cls)
        if cached is not None:
            return cached

        if inspect.isabstract(cls):
            msg = f'"{cls.__qualname__}" is not instantiable'
            raise ConfigurationError(msg)

        context = Invocation(
            request=invocation.request if invocation else None,
            response=invocation.response if invocation else None,
        )
        signature = self._constructor(cls)
        args, kwargs = self.arguments(signature, context, cls.__qualname__)

        logger.debug("Constructing %s", cls.__qualname__)
        return self.instances.add(cls, cls(*args, **kwargs))

    def _constructor(self, cls: type) -> CallableSignature:
        signature = self._constructors.get(cls)
        if signature is None:
            if cls.__init__ is object.__init__:
                signature = CallableSignature(())
            else:
                signature = describe(cls.__init__, skip_first=True)
            self._constructors[cls] = signature
        return signature
