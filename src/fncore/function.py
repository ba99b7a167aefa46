"""
Function: a named, typed, invocable unit of work.

```python
from fncore.function import Function
from fncore.store import GlobalStore
from fncore.callable import get_global, set_global

def init():
    set_global("greeting", "hello")

startup = Function.startup_task(logic=init)
hello = Function.http("hello", logic=lambda request: get_global("greeting"))

store = GlobalStore()
startup.call(hello, store)
hello.call("the-request", store)  # "hello"
```

## Function types

- `http`: request/response handler, receives the decoded HTTP request
- `cloud_event`: event handler, receives the decoded event
- `typed`: receives an instance of `request_class` (or the raw payload when
  no class is given); the server adapter decodes/encodes with
  `decode_request` / `encode_response`
- `startup_task`: run once before serving, receives the function about to be
  served (zero-argument logic is fine too); name is optional

## Lifecycle

A function is defined once, may have capability layers `include`d at any
point, and is called any number of times. Each `call` instantiates the
callable type bound to the given `GlobalStore` and dispatches `call` through
a snapshot of the layers. Errors raised by user logic propagate unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Mapping, MutableMapping
from typing import Any

from pydantic import ValidationError
from typing_extensions import override

from fncore import GlobalRef
from fncore.callable import CallableType, resolve
from fncore.compose.layers import CapabilityLayer
from fncore.config import FUNCTION_TYPES, Configurable, FunctionConfig, FunctionType
from fncore.errors import ConfigurationError
from fncore.store import GlobalStore
from fncore.types import decode_request, encode_response, has_encoder

log = logging.getLogger(__name__)


def _make_config(
    name: str | None, type: str, sealed: bool = False, **refs: str | None
) -> FunctionConfig:
    if type not in FUNCTION_TYPES:
        raise ConfigurationError(f"unknown function type {type!r}, expected one of {FUNCTION_TYPES}")
    try:
        return FunctionConfig.model_validate({"name": name, "type": type, "sealed": sealed, **refs})
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e


def _ref_or_none(o: Any) -> str | None:
    """Reference recorded in the config; `None` when `o` has no importable name."""
    if o is None:
        return None
    try:
        ref = GlobalRef(o)
    except (AttributeError, AssertionError):
        return None
    return str(ref) if ref.is_importable() else None


class Function(Configurable[FunctionConfig]):
    """
    A function definition: name and type (held in `config`), the resolved
    `callable_type`, and for `typed` functions the request/response classes.

    Construct with `Function.http`, `Function.cloud_event`, `Function.typed`,
    `Function.startup_task`, `define`, or `Function.from_config`. Pass either
    `logic` (inline function) or `callable` (object instance or class).
    """

    callable_type: CallableType
    request_class: type | None
    response_class: type | None
    logger: logging.Logger

    def __init__(
        self,
        config: FunctionConfig,
        callable: Any = None,
        logic: Any = None,
        request_class: type | None = None,
        response_class: type | None = None,
    ) -> None:
        super().__init__(config)
        if callable is not None and logic is not None:
            raise ConfigurationError(f"{self._label()}: pass either callable or logic, not both")
        if config.type != "typed" and (request_class is not None or response_class is not None):
            raise ConfigurationError(f"{self._label()}: request/response classes require a typed function")
        if response_class is not None and not has_encoder(response_class):
            raise ConfigurationError(
                f"{self._label()}: response_class {response_class!r} must define to_json or be a pydantic BaseModel"
            )
        self.request_class = request_class
        self.response_class = response_class
        self.callable_type = resolve(
            logic if logic is not None else callable, request_class, sealed=config.sealed
        )
        self.logger = logging.getLogger(f"fncore.function.{config.name or 'startup_task'}")
        log.debug(f"defined {self!r}")

    @property
    def name(self) -> str | None:
        return self.config.name

    @property
    def type(self) -> FunctionType:
        return self.config.type

    @property
    def layers(self) -> tuple[CapabilityLayer, ...]:
        return self.callable_type.layers

    def _label(self) -> str:
        return f"{self.config.type} function {self.config.name!r}"

    @classmethod
    def http(
        cls, name: str, callable: Any = None, logic: Any = None, sealed: bool = False
    ) -> Function:
        return define("http", name, callable=callable, logic=logic, sealed=sealed)

    @classmethod
    def cloud_event(
        cls, name: str, callable: Any = None, logic: Any = None, sealed: bool = False
    ) -> Function:
        return define("cloud_event", name, callable=callable, logic=logic, sealed=sealed)

    @classmethod
    def typed(
        cls,
        name: str,
        callable: Any = None,
        logic: Any = None,
        request_class: type | None = None,
        response_class: type | None = None,
        sealed: bool = False,
    ) -> Function:
        return define(
            "typed",
            name,
            callable=callable,
            logic=logic,
            request_class=request_class,
            response_class=response_class,
            sealed=sealed,
        )

    @classmethod
    def startup_task(
        cls, callable: Any = None, logic: Any = None, name: str | None = None, sealed: bool = False
    ) -> Function:
        return define("startup_task", name, callable=callable, logic=logic, sealed=sealed)

    @classmethod
    def from_config(cls, config: FunctionConfig, logic: Any = None) -> Function:
        """
        Build from a `FunctionConfig`, importing the referenced callable and
        classes. `logic` supplies inline logic when the config names no callable.
        """

        def load(ref: GlobalRef | None) -> Any:
            if ref is None:
                return None
            try:
                return ref.get_instance()
            except (AssertionError, ImportError, AttributeError) as e:
                raise ConfigurationError(f"cannot resolve {ref}: {e}") from e

        return cls(
            config,
            callable=load(config.callable),
            logic=logic,
            request_class=load(config.request_class),
            response_class=load(config.response_class),
        )

    def include(self, layer: Any) -> Function:
        """Compose a capability layer on top; affects calls dispatched afterwards."""
        layer = CapabilityLayer.ensure(layer)
        self.callable_type.chain.compose(layer)
        log.debug(f"{self._label()} includes {layer.name!r}")
        return self

    def seal(self) -> None:
        """Forbid further `include`s."""
        self.callable_type.chain.seal()

    @property
    def sealed(self) -> bool:
        return self.callable_type.chain.sealed

    def call(
        self,
        request: Any,
        store: GlobalStore | MutableMapping[Hashable, Any] | None = None,
        logger: logging.Logger | None = None,
    ) -> Any:
        """
        Invoke with `request` (for startup tasks: the function being
        initialized). `store` is shared by reference: pass the same
        `GlobalStore` or the same dict to every call that shares globals.
        """
        return self.callable_type.invoke(request, GlobalStore.ensure(store), logger or self.logger)

    def populate_globals(
        self, store: GlobalStore | Mapping[Hashable, Any] | None = None
    ) -> GlobalStore:
        """New store holding `function_name`, updated with `store` when given."""
        result = GlobalStore({"function_name": self.name})
        if store is not None:
            result.update(store)
        return result

    def decode_request(self, data: Any) -> Any:
        return decode_request(self.request_class, data)

    def encode_response(self, value: Any) -> Any:
        return encode_response(value)

    @override
    def __repr__(self):
        return f"Function({self.config.name!r}, {self.config.type!r}, {self.callable_type.kind})"


def define(
    kind: str,
    name: str | None,
    callable: Any = None,
    request_class: type | None = None,
    response_class: type | None = None,
    logic: Any = None,
    sealed: bool = False,
) -> Function:
    """
    Define a function of the given kind.

    >>> define("http", "echo", logic=lambda request: request).call("ping")
    'ping'
    >>> define("rpc", "x", logic=lambda: None)
    Traceback (most recent call last):
    ...
    fncore.errors.ConfigurationError: unknown function type 'rpc', expected one of ('http', 'cloud_event', 'typed', 'startup_task')
    """
    config = _make_config(
        name,
        kind,
        sealed=sealed,
        callable=_ref_or_none(callable),
        request_class=_ref_or_none(request_class),
        response_class=_ref_or_none(response_class),
    )
    return Function(
        config,
        callable=callable,
        logic=logic,
        request_class=request_class,
        response_class=response_class,
    )
