"""
Callable: resolving function sources into invocable callable types.

A function's logic can be supplied three ways:

```python
from fncore.callable import Callable, get_global

# 1. inline logic: a function or lambda taking zero or one argument
def hello(request):
    return f"hello from {get_global('function_name')}"

# 2. an object with `call` (or `__call__`), shared by every invocation
class Echo:
    def __call__(self, request):
        return request

echo = Echo()

# 3. a class implementing `call`, instantiated per invocation with the store
class Hello(Callable):
    def call(self, request):
        return f"hello from {self.get_global('function_name')}"
```

`resolve()` turns any of these (or a `GlobalRef` / `"module:Name"` string
naming one) into a `CallableType`, the canonical form `Function` invokes and
composes layers onto.

While an invocation is in flight, the module-level accessors `get_global`,
`set_global`, `set_lazy_global`, `include` and `current` operate on it. This
is how inline logic and plain objects reach the store.
"""

import logging
from collections.abc import Hashable, MutableMapping
from contextvars import ContextVar
from functools import partial
from inspect import isclass, isroutine
from typing import Any, ClassVar, Literal

from typing_extensions import override

from fncore import GlobalRef
from fncore.compose import ArityAdapter, Method
from fncore.compose.layers import LayerChain, LayeredInstance
from fncore.errors import CompositionError, ConfigurationError
from fncore.store import GlobalStore
from fncore.types import has_decoder

log = logging.getLogger(__name__)

default_logger = logging.getLogger("fncore.function")

SourceKind = Literal["inline", "instance", "class"]

_current: ContextVar[LayeredInstance | None] = ContextVar("fncore_current", default=None)
_current_store: ContextVar[GlobalStore | None] = ContextVar("fncore_current_store", default=None)


class Callable:
    """
    Base class for class-based functions.

    Subclasses implement `call(self, request)`; the constructor receives the
    store and logger of the invocation. Subclasses overriding `__init__`
    should accept `**kwargs` and pass them on.

    Behaviors of included layers are reachable as attributes of `self`
    while the instance serves an invocation.
    """

    sealed: ClassVar[bool] = False

    _store: GlobalStore
    _logger: logging.Logger
    _layered: LayeredInstance | None

    def __init__(
        self,
        store: GlobalStore | MutableMapping[Hashable, Any] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = GlobalStore.ensure(store)
        self._logger = logger or default_logger
        self._layered = None

    @property
    def store(self) -> GlobalStore:
        return self._store

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def get_global(self, key: Hashable, default: Any = None) -> Any:
        return self._store.get(key, default)

    def set_global(self, key: Hashable, value: Any) -> None:
        self._store.set(key, value)

    def set_lazy_global(self, key: Hashable, initializer: Any) -> None:
        self._store.set_lazy(key, initializer)

    def include(self, layer: Any) -> None:
        layered = self.__dict__.get("_layered")
        if layered is None:
            raise CompositionError(f"{self!r} is not serving an invocation")
        layered.include(layer)

    def __getattr__(self, name: str) -> Any:
        layered = self.__dict__.get("_layered")
        if layered is not None and not name.startswith("_"):
            behavior = layered.find_behavior(name)
            if behavior is not None:
                return behavior
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")


class DelegatingCallable(Callable):
    """Generated callable for inline logic and plain objects: `call` delegates through an `ArityAdapter`."""

    adapter: ArityAdapter

    def __init__(
        self,
        adapter: ArityAdapter,
        store: GlobalStore | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(store=store, logger=logger)
        self.adapter = adapter

    def call(self, request: Any) -> Any:
        return self.adapter.invoke(request)

    @override
    def __repr__(self):
        return f"{self.__class__.__name__}({self.adapter.method.name})"


class CallableType:
    """
    Canonical, per-function form of a callable source.

    Holds how to instantiate the callable for an invocation, the arity of its
    `call`, and the `LayerChain` of capabilities composed onto it. Every
    `resolve()` produces a new `CallableType`, so functions sharing a source
    never share layers.
    """

    kind: SourceKind
    source: Any
    arity: int
    chain: LayerChain
    _adapter: ArityAdapter | None
    _call_name: str
    _pass_store: bool
    _pass_logger: bool

    def __init__(
        self,
        kind: SourceKind,
        source: Any,
        arity: int,
        adapter: ArityAdapter | None = None,
        call_name: str = "call",
        pass_store: bool = False,
        pass_logger: bool = False,
        sealed: bool = False,
    ) -> None:
        self.kind = kind
        self.source = source
        self.arity = arity
        self.chain = LayerChain(sealed=sealed)
        self._adapter = adapter
        self._call_name = call_name
        self._pass_store = pass_store
        self._pass_logger = pass_logger

    @property
    def layers(self):
        return self.chain.snapshot()

    def instantiate(self, store: GlobalStore, logger: logging.Logger | None = None) -> Any:
        if self.kind != "class":
            assert self._adapter is not None
            return DelegatingCallable(self._adapter, store=store, logger=logger)
        kwargs: dict[str, Any] = {}
        if self._pass_store:
            kwargs["store"] = store
        if self._pass_logger:
            kwargs["logger"] = logger
        instance = self.source(**kwargs)
        if isinstance(instance, Callable) and "_store" not in instance.__dict__:
            Callable.__init__(instance, store=store, logger=logger)
        return instance

    def bind(self, store: GlobalStore, logger: logging.Logger | None = None) -> LayeredInstance:
        """Instantiate for one invocation, seen through a snapshot of the layer chain."""
        instance = self.instantiate(store, logger)
        base: dict[str, Any] = {}
        if self.kind == "class":
            base["call"] = ArityAdapter(getattr(instance, self._call_name), arity=self.arity).invoke
        layered = LayeredInstance(instance, self.chain.snapshot(), self.chain, base=base)
        if isinstance(instance, Callable):
            instance._layered = layered  # pyright: ignore[reportPrivateUsage]
        return layered

    def invoke(
        self, request: Any, store: GlobalStore, logger: logging.Logger | None = None
    ) -> Any:
        layered = self.bind(store, logger)
        token = _current.set(layered)
        store_token = _current_store.set(store)
        try:
            return layered.dispatch("call", request)
        finally:
            _current_store.reset(store_token)
            _current.reset(token)

    @override
    def __repr__(self):
        return f"CallableType({self.kind}, {self.source!r}, layers={[la.name for la in self.layers]!r})"


def _object_call(o: Any) -> Any:
    call = getattr(o, "call", None)
    if callable(call):
        return call
    if callable(o):
        return o
    return None


def resolve(source: Any, request_class: Any = None, sealed: bool = False) -> CallableType:
    """
    Resolve a function source into a `CallableType`.

    Raises `ConfigurationError` when the source is not callable, declares an
    unsupported arity, or `request_class` cannot decode wire data.

    >>> resolve(lambda request: request).kind
    'inline'
    >>> resolve(lambda: None).arity
    0
    >>> resolve(42)
    Traceback (most recent call last):
    ...
    fncore.errors.ConfigurationError: 42 is not callable
    """
    if request_class is not None and not has_decoder(request_class):
        raise ConfigurationError(
            f"request_class {request_class!r} must define decode_json or be a pydantic BaseModel"
        )
    if isinstance(source, (GlobalRef, str)):
        try:
            source = GlobalRef(source).get_instance()
        except (AssertionError, ImportError, AttributeError) as e:
            raise ConfigurationError(f"cannot resolve callable {source!r}: {e}") from e
    if source is None:
        raise ConfigurationError("function requires inline logic or a callable")
    if isclass(source):
        return _resolve_class(source, sealed)
    if isroutine(source) or isinstance(source, partial):
        adapter = ArityAdapter(source)
        log.debug(f"resolved inline {adapter.method.name}, arity {adapter.arity}")
        return CallableType("inline", source, adapter.arity, adapter=adapter, sealed=sealed)
    call = _object_call(source)
    if call is None:
        raise ConfigurationError(f"{source!r} is not callable")
    adapter = ArityAdapter(call)
    log.debug(f"resolved instance {source!r}, arity {adapter.arity}")
    return CallableType(
        "instance",
        source,
        adapter.arity,
        adapter=adapter,
        sealed=sealed or bool(getattr(source, "sealed", False)),
    )


def _resolve_class(klass: type, sealed: bool) -> CallableType:
    if callable(getattr(klass, "call", None)):
        call_name = "call"
    elif any("__call__" in vars(base) for base in klass.__mro__[:-1]):
        call_name = "__call__"
    else:
        raise ConfigurationError(f"{klass.__qualname__} does not implement call(request)")
    arity = Method(getattr(klass, call_name), skip_self=True).arity
    ctor = Method(klass)
    args = ctor.args or []
    required = [a.name for a in args if not a.is_optional and a.name not in ("store", "logger")]
    if required:
        raise ConfigurationError(
            f"{klass.__qualname__} constructor requires {required}, only store= and logger= are passed"
        )
    log.debug(f"resolved class {klass.__qualname__}, arity {arity}")
    return CallableType(
        "class",
        klass,
        arity,
        call_name=call_name,
        pass_store=ctor.accepts_keyword("store"),
        pass_logger=ctor.accepts_keyword("logger"),
        sealed=sealed or bool(getattr(klass, "sealed", False)),
    )


def current() -> LayeredInstance:
    """The invocation in flight, seen through its layers."""
    layered = _current.get()
    if layered is None:
        raise RuntimeError("not inside a function invocation")
    return layered


def _store() -> GlobalStore:
    store = _current_store.get()
    if store is None:
        raise RuntimeError("not inside a function invocation")
    return store


def get_global(key: Hashable, default: Any = None) -> Any:
    return _store().get(key, default)


def set_global(key: Hashable, value: Any) -> None:
    _store().set(key, value)


def set_lazy_global(key: Hashable, initializer: Any) -> None:
    _store().set_lazy(key, initializer)


def include(layer: Any) -> None:
    """Compose `layer` onto the function in flight; the rest of this call sees it."""
    current().include(layer)
