"""
Compose: introspection and arity-aware invocation of user callables.

User logic may declare zero or one positional parameter. The parameter count
is read from the signature once, when the function is defined, and every
later invocation consults it:

```python
from fncore.compose import ArityAdapter

ArityAdapter(lambda: "no args").invoke("ignored")  # "no args"
ArityAdapter(lambda request: request).invoke("req")  # "req"
ArityAdapter(lambda a, b: a)  # ConfigurationError
```

## Core Concepts

- `ArgInfo`: metadata about one declared parameter
- `Method`: wrapper around a callable with signature introspection
- `ArityAdapter`: calls a target with zero or one argument, per its signature

Capability layers live in `fncore.compose.layers`.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from inspect import isclass, isfunction
from typing import Any, NamedTuple

from fncore import GlobalRef
from fncore.errors import ConfigurationError

log = logging.getLogger(__name__)

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


class ArgInfo(NamedTuple):
    """
    Metadata about a callable's parameter, extracted from its signature.
    """

    name: str
    annotation: Any | None
    default: Any | None
    is_optional: bool
    kind: inspect._ParameterKind  # pyright: ignore[reportPrivateUsage]

    @classmethod
    def from_param(cls, param: inspect.Parameter):
        is_optional = param.default != inspect.Parameter.empty or param.kind in (
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        )
        return cls(
            name=param.name,
            annotation=param.annotation if param.annotation != inspect.Parameter.empty else None,
            default=param.default if param.default != inspect.Parameter.empty else None,
            is_optional=is_optional,
            kind=param.kind,
        )

    def is_positional(self) -> bool:
        return self.kind in _POSITIONAL

    def is_var_positional(self) -> bool:
        return self.kind == inspect.Parameter.VAR_POSITIONAL

    def is_var_keyword(self) -> bool:
        return self.kind == inspect.Parameter.VAR_KEYWORD


class Method:
    """
    Wrapper around a callable that provides introspection of its arguments.

    Functions and classes also get a `GlobalRef` so they can be named in
    configuration; other callables (bound methods, instances) do not.
    Callables without an introspectable signature (some builtins) report
    `args` as `None`.
    """

    gref: GlobalRef | None
    o: Callable[..., Any]
    skip_self: bool
    _args: list[ArgInfo] | None
    _introspected: bool

    def __init__(self, o: Callable[..., Any] | GlobalRef, skip_self: bool = False):
        """`skip_self` drops the first parameter, for functions looked up on a class."""
        if isinstance(o, GlobalRef):
            self.gref = o
            o = o.get_instance()
        else:
            self.gref = GlobalRef(o) if isclass(o) or isfunction(o) else None
        assert callable(o), "method instance must be a callable"
        self.o = o
        self.skip_self = skip_self
        self._args = None
        self._introspected = False

    @property
    def args(self) -> list[ArgInfo] | None:
        if not self._introspected:
            try:
                sig = inspect.signature(self.o)
            except (TypeError, ValueError):
                log.debug(f"no signature for {self.name}, assuming one argument")
                self._args = None
            else:
                params = list(sig.parameters.values())
                if self.skip_self and params and params[0].kind in _POSITIONAL:
                    params = params[1:]
                self._args = [ArgInfo.from_param(param) for param in params]
            self._introspected = True
        return self._args

    def accepts_keyword(self, name: str) -> bool:
        args = self.args
        if args is None:
            return False
        return any(
            arg.is_var_keyword() or (arg.name == name and arg.kind != inspect.Parameter.POSITIONAL_ONLY)
            for arg in args
        )

    @property
    def arity(self) -> int:
        """
        Number of positional arguments to pass: 0 or 1.

        >>> Method(lambda: 1).arity
        0
        >>> Method(lambda request=None: 1).arity
        1
        >>> Method(lambda *args: 1).arity
        1
        >>> Method(lambda a, b: 1).arity
        Traceback (most recent call last):
        ...
        fncore.errors.ConfigurationError: <lambda> declares 2 required positional parameters, at most 1 is supported
        """
        args = self.args
        if args is None:
            return 1
        positional = [arg for arg in args if arg.is_positional()]
        required = [arg for arg in positional if not arg.is_optional]
        if len(required) > 1:
            raise ConfigurationError(
                f"{self.name} declares {len(required)} required positional parameters, at most 1 is supported"
            )
        kw_required = [
            arg.name
            for arg in args
            if arg.kind == inspect.Parameter.KEYWORD_ONLY and not arg.is_optional
        ]
        if kw_required:
            raise ConfigurationError(
                f"{self.name} declares required keyword-only parameters {kw_required}"
            )
        if positional or any(arg.is_var_positional() for arg in args):
            return 1
        return 0

    @property
    def name(self) -> str:
        if self.gref is not None:
            return self.gref.name
        return getattr(self.o, "__qualname__", type(self.o).__name__)

    @property
    def doc(self):
        return self.o.__doc__

    def __call__(self, *args: Any, **kwargs: Any):
        return self.o(*args, **kwargs)


class ArityAdapter:
    """
    Invokes a callable with zero or one argument according to its declared
    parameters. The count is computed once, at construction, so an
    unsupported signature fails at definition time.
    """

    method: Method
    arity: int

    def __init__(self, target: Callable[..., Any], arity: int | None = None) -> None:
        """Pass `arity` when it was already computed, to skip introspection."""
        self.method = Method(target)
        self.arity = self.method.arity if arity is None else arity

    def invoke(self, maybe_argument: Any = None) -> Any:
        if self.arity == 0:
            return self.method()
        return self.method(maybe_argument)


def invoke(target: Callable[..., Any], maybe_argument: Any = None) -> Any:
    """
    >>> invoke(lambda: "zero", "ignored")
    'zero'
    >>> invoke(lambda x: x, "one")
    'one'
    """
    return ArityAdapter(target).invoke(maybe_argument)
