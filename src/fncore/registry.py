"""
Registry: the functions a process serves, as registered by bootstrap code.

```python
from fncore.registry import FunctionRegistry
from fncore.callable import set_global, get_global

registry = FunctionRegistry()

@registry.startup_task()
def connect():
    set_global("db", make_connection())

@registry.http("lookup")
def lookup(request):
    return get_global("db").find(request)

store = registry.run_startup_tasks(registry["lookup"])
registry["lookup"].call(request, store)
```
"""

import logging
from collections.abc import Callable, Hashable, MutableMapping
from inspect import isroutine
from typing import Any

from fncore.errors import ConfigurationError
from fncore.function import Function, define
from fncore.store import GlobalStore

log = logging.getLogger(__name__)


class FunctionRegistry(dict[str, Function]):
    """
    Dictionary mapping function names to `Function`s, plus the startup tasks
    in registration order.

    Use `add()` to register a defined function, or the `http`, `cloud_event`,
    `typed` and `startup_task` decorators to define and register in one step.
    """

    _startup_tasks: list[Function]

    def __init__(self) -> None:
        super().__init__()
        self._startup_tasks = []

    def add(self, function: Function) -> Function:
        if function.name is not None and function.name in self:
            raise ConfigurationError(f"function {function.name!r} is already registered")
        if function.type == "startup_task":
            self._startup_tasks.append(function)
        if function.name is not None:
            self[function.name] = function
        return function
        assert function.name is not None
        if function.name in self:
            raise ConfigurationError(f"function {function.name!r} is already registered")
        self[function.name] = function
        return function

    def _wrap(self, kind: str, name: str | None, **kwargs: Any) -> Callable[[Any], Function]:
        def decorator(o: Any) -> Function:
            if isroutine(o):
                return self.add(define(kind, name, logic=o, **kwargs))
            return self.add(define(kind, name, callable=o, **kwargs))

        return decorator

    def http(self, name: str, sealed: bool = False) -> Callable[[Any], Function]:
        return self._wrap("http", name, sealed=sealed)

    def cloud_event(self, name: str, sealed: bool = False) -> Callable[[Any], Function]:
        return self._wrap("cloud_event", name, sealed=sealed)

    def typed(
        self,
        name: str,
        request_class: type | None = None,
        response_class: type | None = None,
        sealed: bool = False,
    ) -> Callable[[Any], Function]:
        return self._wrap(
            "typed",
            name,
            request_class=request_class,
            response_class=response_class,
            sealed=sealed,
        )

    def startup_task(self, name: str | None = None) -> Callable[[Any], Function]:
        return self._wrap("startup_task", name)

    def names(self) -> list[str]:
        return list(self)

    def startup_tasks(self) -> tuple[Function, ...]:
        return tuple(self._startup_tasks)

    def run_startup_tasks(
        self,
        target: Any,
        store: GlobalStore | MutableMapping[Hashable, Any] | None = None,
        logger: logging.Logger | None = None,
    ) -> GlobalStore:
        """
        Run every startup task, in registration order, against one store and
        return it. The first failing task stops the run; its error propagates.
        """
        store = GlobalStore.ensure(store)
        for task in self._startup_tasks:
            log.debug(f"running startup task {task.name or task.callable_type.source!r}")
            task.call(target, store, logger)
        return store
