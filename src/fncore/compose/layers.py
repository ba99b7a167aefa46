"""
Layers: capability sets composed onto a function after it is defined.

A `CapabilityLayer` is a named bundle of behaviors (plain functions taking
`self` first, like methods). Each `Function` owns a `LayerChain`; `include`
appends a layer on top. When the function is invoked, a name is resolved by
walking the layers top-down and falling back to the callable instance
itself. A behavior reaches the behavior it shadows with `self.previous(...)`.

```python
from fncore.compose.layers import CapabilityLayer

shout = CapabilityLayer("shout")

@shout.behavior
def call(self, request):
    return self.previous(request).upper()

function.include(shout)
```

Mixin-style classes work too; their public functions become behaviors:

```python
class Greeting:
    def greet(self, who):
        return f"hello {who}"

function.include(Greeting)  # same as CapabilityLayer.from_class(Greeting)
```

## Core Concepts

- `CapabilityLayer`: named, ordered mapping of behavior name to function
- `LayerChain`: per-function list of layers; compose appends, snapshots are immutable
- `LayeredInstance`: a callable instance seen through a snapshot of layers
- `LayerFrame`: the `self` a behavior receives; knows where `previous` points

Calls take a snapshot of the chain when dispatched, so layers composed while
a call is in flight only affect later calls.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from functools import partial
from inspect import isclass, isfunction
from typing import Any, final

from typing_extensions import override

from fncore.errors import CompositionError

log = logging.getLogger(__name__)

_MISSING = object()


class CapabilityLayer:
    """
    Named bundle of behaviors.

    >>> layer = CapabilityLayer("audit", {"tag": lambda self: "audited"})
    >>> layer.defines("tag"), layer.defines("call")
    (True, False)
    >>> layer
    CapabilityLayer('audit', ['tag'])
    """

    name: str
    behaviors: dict[str, Callable[..., Any]]
    source: Any

    def __init__(
        self,
        name: str,
        behaviors: Mapping[str, Callable[..., Any]] | None = None,
        source: Any = None,
    ):
        """`source` is the mixin class a layer was collected from, if any."""
        self.name = name
        self.source = source
        self.behaviors = {}
        for key, fn in (behaviors or {}).items():
            self.add(key, fn)

    def add(self, name: str, fn: Callable[..., Any]) -> None:
        if not callable(fn):
            raise CompositionError(f"behavior {name!r} of layer {self.name!r} is not callable")
        self.behaviors[name] = fn

    def behavior(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        """Decorator: register `fn` under its own name."""
        self.add(fn.__name__, fn)
        return fn

    def defines(self, name: str) -> bool:
        return name in self.behaviors

    def same_as(self, other: CapabilityLayer) -> bool:
        """Same layer object, or both collected from the same mixin class."""
        return other is self or (self.source is not None and other.source is self.source)

    @classmethod
    def from_class(cls, klass: type) -> CapabilityLayer:
        """
        Collect public functions of a mixin class (and its bases, subclass
        definitions winning) into a layer named after the class.
        """
        behaviors: dict[str, Callable[..., Any]] = {}
        for base in reversed(klass.__mro__):
            if base is object:
                continue
            for key, value in vars(base).items():
                if key.startswith("_"):
                    continue
                if isinstance(value, staticmethod):
                    behaviors[key] = _drop_self(value.__func__)
                elif isfunction(value):
                    behaviors[key] = value
        return cls(klass.__qualname__, behaviors, source=klass)

    @classmethod
    def ensure(cls, o: Any) -> CapabilityLayer:
        if isinstance(o, CapabilityLayer):
            return o
        if isclass(o):
            return cls.from_class(o)
        if isinstance(o, Mapping):
            return cls("anonymous", o)  # pyright: ignore[reportUnknownArgumentType]
        raise CompositionError(f"cannot compose {o!r}: expected a CapabilityLayer, class or mapping")

    @override
    def __repr__(self):
        return f"{self.__class__.__name__}({self.name!r}, {list(self.behaviors)!r})"


def _drop_self(fn: Callable[..., Any]) -> Callable[..., Any]:
    def behavior(_self: Any, *args: Any, **kwargs: Any) -> Any:
        return fn(*args, **kwargs)

    behavior.__name__ = getattr(fn, "__name__", "behavior")
    return behavior


class LayerChain:
    """
    Ordered layers owned by one function. Composition replaces an immutable
    tuple under a lock, so readers always see a consistent snapshot.
    """

    _layers: tuple[CapabilityLayer, ...]
    _lock: threading.Lock
    _sealed: bool

    def __init__(self, sealed: bool = False) -> None:
        self._layers = ()
        self._lock = threading.Lock()
        self._sealed = sealed

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        self._sealed = True

    def compose(self, layer: Any, once: bool = False) -> tuple[CapabilityLayer, ...]:
        """
        Append `layer` on top. With `once`, a layer already in the chain is
        left where it is and the chain is unchanged.

        >>> chain, audit = LayerChain(), CapabilityLayer("audit")
        >>> len(chain.compose(audit)), len(chain.compose(audit, once=True))
        (1, 1)
        """
        layer = CapabilityLayer.ensure(layer)
        with self._lock:
            if once and any(layer.same_as(existing) for existing in self._layers):
                return self._layers
            if self._sealed:
                raise CompositionError(f"cannot compose {layer.name!r}: callable type is sealed")
            self._layers = (*self._layers, layer)
            layers = self._layers
        log.debug(f"composed layer {layer.name!r}, depth {len(layers)}")
        return layers

    def snapshot(self) -> tuple[CapabilityLayer, ...]:
        return self._layers

    def __iter__(self) -> Iterator[CapabilityLayer]:
        return iter(self._layers)

    def __len__(self) -> int:
        return len(self._layers)

    def __contains__(self, layer: object) -> bool:
        return any(existing is layer for existing in self._layers)

    @override
    def __repr__(self):
        return f"LayerChain({[layer.name for layer in self._layers]!r}, sealed={self._sealed})"


def compose(chain: LayerChain, layer: Any) -> LayerChain:
    """Append `layer` on top of `chain` and return the chain."""
    chain.compose(layer)
    return chain


@final
class LayeredInstance:
    """
    A callable instance seen through a snapshot of layers.

    Attribute lookup walks the layers top-down, then falls back to the
    instance. Attribute assignment goes to the instance.

    >>> class Base:
    ...     def call(self, request):
    ...         return request
    >>> wrap = CapabilityLayer("wrap", {"call": lambda self, r: f"<{self.previous(r)}>"})
    >>> LayeredInstance(Base(), (wrap, wrap)).dispatch("call", "x")
    '<<x>>'
    """

    __slots__ = ("_target", "_layers", "_chain", "_base")

    _target: Any
    _layers: list[CapabilityLayer]
    _chain: LayerChain | None
    _base: Mapping[str, Callable[..., Any]]

    def __init__(
        self,
        target: Any,
        layers: tuple[CapabilityLayer, ...] = (),
        chain: LayerChain | None = None,
        base: Mapping[str, Callable[..., Any]] | None = None,
    ) -> None:
        """`base` overrides behaviors of `target` below all layers."""
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_layers", list(layers))
        object.__setattr__(self, "_chain", chain)
        object.__setattr__(self, "_base", dict(base or {}))

    @property
    def target(self) -> Any:
        return self._target

    @property
    def layers(self) -> tuple[CapabilityLayer, ...]:
        return tuple(self._layers)

    def include(self, layer: Any) -> None:
        """
        Compose onto the owning chain and onto this invocation's snapshot,
        so the rest of this call sees the layer too. A layer already
        included is not composed again, so a call body may include on
        every invocation.
        """
        layer = CapabilityLayer.ensure(layer)
        if self._chain is not None:
            self._chain.compose(layer, once=True)
        if not any(layer.same_as(existing) for existing in self._layers):
            self._layers.append(layer)

    def dispatch(self, name: str, *args: Any, **kwargs: Any) -> Any:
        return self._dispatch_below(name, len(self._layers), args, kwargs)

    def _dispatch_below(
        self, name: str, level: int, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> Any:
        for i in range(level - 1, -1, -1):
            fn = self._layers[i].behaviors.get(name)
            if fn is not None:
                return fn(LayerFrame(self, i, name), *args, **kwargs)
        base = self._base.get(name)
        if base is None:
            base = getattr(self._target, name, _MISSING)
        if base is _MISSING:
            raise CompositionError(f"no behavior {name!r} below layer {level}")
        return base(*args, **kwargs)

    def find_behavior(self, name: str) -> Callable[..., Any] | None:
        """Topmost layer behavior for `name`, bound; `None` if no layer defines it."""
        for i in range(len(self._layers) - 1, -1, -1):
            fn = self._layers[i].behaviors.get(name)
            if fn is not None:
                return partial(fn, LayerFrame(self, i, name))
        return None

    def resolve(self, name: str, default: Any = _MISSING) -> Any:
        behavior = self.find_behavior(name)
        if behavior is not None:
            return behavior
        if default is _MISSING:
            return getattr(self._target, name)
        return getattr(self._target, name, default)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        return self.resolve(name)

    @override
    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._target, name, value)

    @override
    def __repr__(self):
        return f"LayeredInstance({self._target!r}, {[layer.name for layer in self._layers]!r})"


@final
class LayerFrame:
    """
    The `self` a behavior receives: behaves like the layered instance, and
    `previous(...)` calls the same behavior from the next layer down.
    """

    __slots__ = ("_instance", "_level", "_behavior")

    _instance: LayeredInstance
    _level: int
    _behavior: str

    def __init__(self, instance: LayeredInstance, level: int, behavior: str) -> None:
        object.__setattr__(self, "_instance", instance)
        object.__setattr__(self, "_level", level)
        object.__setattr__(self, "_behavior", behavior)

    def previous(self, *args: Any, **kwargs: Any) -> Any:
        return self._instance._dispatch_below(  # pyright: ignore[reportPrivateUsage]
            self._behavior, self._level, args, kwargs
        )

    def include(self, layer: Any) -> None:
        self._instance.include(layer)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        return self._instance.resolve(name)

    @override
    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._instance.target, name, value)
