"""
Store: the shared globals handed to every function invocation.

A `GlobalStore` maps keys to values or to lazy initializers. Startup tasks
populate it, request-serving functions read from it; a reader never needs to
know whether a value was set eagerly or lazily.

```python
from fncore.store import GlobalStore

store = GlobalStore()
store.set("region", "us-east1")
store.set_lazy("client", lambda: make_expensive_client())

store.get("client")  # runs make_expensive_client() once
store.get("client")  # cached
store.get("missing")  # None
```

A plain `dict` handed to `Function.call` is wrapped, not copied: every
function called with the same dict shares it, exactly like sharing one
`GlobalStore`. Pending initializers are kept in the dict until resolved.

Lazy initializers are single-flight: concurrent readers of one key wait for
the first reader to finish, and the initializer body runs once per store.
If the initializer raises, `get` raises `GlobalResolutionFailure` and the key
stays pending so a later `get` retries.

Initializers may read other keys. A cycle of initializers (`a` reads `b`
reads `a`) raises `GlobalResolutionFailure` when it closes on one thread.
When the cycle spans threads, each waiter gives up after `wait_timeout`
seconds with `GlobalResolutionFailure` instead of blocking forever.
"""

import logging
import threading
from collections.abc import Callable, Hashable, Iterator, Mapping, MutableMapping
from typing import Any, final

from typing_extensions import override

from fncore.errors import GlobalResolutionFailure

log = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT = 30.0


@final
class _LazyGlobal:
    """Pending initializer with its own lock; `initializer` is `None` once consumed."""

    __slots__ = ("initializer", "value", "lock", "owner")

    initializer: Callable[[], Any] | None
    value: Any
    lock: threading.Lock
    owner: int | None

    def __init__(self, initializer: Callable[[], Any]) -> None:
        self.initializer = initializer
        self.value = None
        self.lock = threading.Lock()
        self.owner = None

    def resolve(self, key: Hashable, timeout: float) -> Any:
        if self.owner == threading.get_ident():
            raise GlobalResolutionFailure(key, "initializer reads its own key")
        if not self.lock.acquire(timeout=timeout):
            raise GlobalResolutionFailure(
                key, f"still resolving in another thread after {timeout}s, initializers may form a cycle"
            )
        try:
            if self.initializer is not None:
                self.owner = threading.get_ident()
                try:
                    value = self.initializer()
                except GlobalResolutionFailure:
                    raise
                except Exception as e:
                    raise GlobalResolutionFailure(key, str(e) or type(e).__name__) from e
                finally:
                    self.owner = None
                log.debug(f"lazy global {key!r} resolved")
                self.value = value
                self.initializer = None
            return self.value
        finally:
            self.lock.release()


class GlobalStore:
    """
    Key to value map with lazy, at-most-once initialization.

    >>> store = GlobalStore({"a": 1})
    >>> calls = []
    >>> store.set_lazy("b", lambda: calls.append(1) or "bee")
    >>> "b" in store, store.is_resolved("b")
    (True, False)
    >>> store.get("b"), store.get("b"), len(calls)
    ('bee', 'bee', 1)
    >>> store.get("c") is None
    True
    >>> sorted(store.keys())
    ['a', 'b']
    """

    _values: MutableMapping[Hashable, Any]
    _lock: threading.Lock
    wait_timeout: float

    def __init__(
        self,
        values: "Mapping[Hashable, Any] | GlobalStore | None" = None,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
    ) -> None:
        self._values = {}
        self._lock = threading.Lock()
        self.wait_timeout = wait_timeout
        if values is not None:
            self.update(values)

    @classmethod
    def wrap(cls, values: MutableMapping[Hashable, Any]) -> "GlobalStore":
        """
        Store backed by `values` itself: writes land in the caller's mapping.

        >>> shared = {}
        >>> GlobalStore.wrap(shared).set("foo", "bar")
        >>> shared
        {'foo': 'bar'}
        """
        store = cls()
        store._values = values
        return store

    @classmethod
    def ensure(cls, store: "MutableMapping[Hashable, Any] | GlobalStore | None") -> "GlobalStore":
        """The store itself, a new empty one for `None`, or a mutable mapping wrapped by reference."""
        if isinstance(store, GlobalStore):
            return store
        if store is None:
            return cls()
        if isinstance(store, MutableMapping):
            return cls.wrap(store)
        raise TypeError(f"store must be a GlobalStore or a mutable mapping, not {type(store).__name__}")

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def set_lazy(self, key: Hashable, initializer: Callable[[], Any]) -> None:
        if not callable(initializer):
            raise TypeError(f"initializer for {key!r} must be callable, not {type(initializer).__name__}")
        with self._lock:
            self._values[key] = _LazyGlobal(initializer)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            if key not in self._values:
                return default
            entry = self._values[key]
        if not isinstance(entry, _LazyGlobal):
            return entry
        # the store lock is not held here: initializers may read other keys
        value = entry.resolve(key, self.wait_timeout)
        with self._lock:
            if self._values.get(key) is entry:
                self._values[key] = value
        return value

    def is_resolved(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._values.get(key)
        if isinstance(entry, _LazyGlobal):
            return entry.initializer is None
        return key in self

    def update(self, values: "Mapping[Hashable, Any] | GlobalStore") -> None:
        """Copy entries in; pending initializers of another store are shared, not re-run."""
        if isinstance(values, GlobalStore):
            with values._lock:  # pyright: ignore[reportPrivateUsage]
                entries = dict(values._values)  # pyright: ignore[reportPrivateUsage]
        else:
            entries = dict(values)
        with self._lock:
            self._values.update(entries)

    def copy(self) -> "GlobalStore":
        return GlobalStore(self, wait_timeout=self.wait_timeout)

    def keys(self) -> list[Hashable]:
        with self._lock:
            return list(self._values)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self.keys())

    @override
    def __repr__(self):
        return f"{self.__class__.__name__}(keys={self.keys()!r})"
