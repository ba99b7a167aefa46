"""
Core utilities for fncore.

fncore is the invocation core of a serverless-function host: it defines,
composes and invokes user functions (`http`, `cloud_event`, `typed` and
`startup_task`). The package is organized as:

- `fncore.function`: `Function` and the typed constructors.
- `fncore.callable`: `Callable` base class and callable resolution.
- `fncore.store`: `GlobalStore`, the shared store of (lazy) globals.
- `fncore.compose`: arity-aware invocation.
- `fncore.compose.layers`: capability layers composed onto functions.
- `fncore.registry`: `FunctionRegistry` used by bootstrap code.

This module provides `GlobalRef` / `GRef`: reference any Python object by
its module path (e.g., `"mymodule:handler"`). Bootstrap code uses it to
name the callables and request classes of functions in configuration.

## GlobalRef Usage

```python
from fncore import GlobalRef

ref = GlobalRef("json:dumps")
dumps_func = ref.get_instance()

ref = GlobalRef(MyHandler)
print(ref)  # "mymodule:MyHandler"
```
"""

import logging
import sys
from inspect import isclass, isfunction, ismodule
from types import ModuleType
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    GetCoreSchemaHandler,
    PlainSerializer,
    WithJsonSchema,
)
from pydantic_core import CoreSchema, core_schema
from typing_extensions import override

log = logging.getLogger(__name__)


class GlobalRef:
    """
    >>> ref = GlobalRef('fncore:GlobalRef')
    >>> ref
    GlobalRef('fncore:GlobalRef')
    >>> ref.get_instance().__name__
    'GlobalRef'
    >>> ref.is_module()
    False
    >>> ref.get_module().__name__
    'fncore'
    >>> grgr = GlobalRef(GlobalRef)
    >>> grgr
    GlobalRef('fncore:GlobalRef')
    >>> grgr.is_class()
    True
    >>> grgr.is_function()
    False
    >>> uref = GlobalRef('fncore')
    >>> uref.is_module()
    True
    >>> GlobalRef(GlobalRef('fncore:')).get_module().__name__
    'fncore'
    >>> GlobalRef('fncore:get_module').is_function()
    True
    """

    module: str
    name: str

    def __init__(self, s: Any) -> None:
        if isinstance(s, GlobalRef):
            self.module, self.name = s.module, s.name
        elif ismodule(s):
            self.module, self.name = s.__name__, ""
        elif isclass(s) or isfunction(s):
            self.module, self.name = s.__module__, s.__qualname__
        else:
            split = s.split(":")
            if len(split) == 1:
                assert bool(split[0]), f"is {repr(s)} empty?"
                split.append("")
            else:
                assert len(split) == 2, f"too many ':' in: {repr(s)}"
            self.module, self.name = split

    @override
    def __str__(self):
        return f"{self.module}:{self.name}"

    @override
    def __repr__(self):
        return f"{self.__class__.__name__}({repr(str(self))})"

    @override
    def __eq__(self, other: Any) -> bool:
        return str(self) == str(other)

    @override
    def __hash__(self) -> int:
        return hash(str(self))

    def get_module(self) -> ModuleType:
        return get_module(self.module)

    def is_module(self) -> bool:
        return not (self.name)

    def is_importable(self) -> bool:
        """`False` for lambdas and objects defined inside a function body."""
        return "<" not in self.name

    def is_class(self) -> bool:
        return not (self.is_module()) and isclass(self.get_instance())

    def is_function(self) -> bool:
        return not (self.is_module()) and isfunction(self.get_instance())

    def get_instance(self) -> Any:
        assert not self.is_module(), f"{repr(self)}.get_module() only"
        o: Any = self.get_module()
        for part in self.name.split("."):
            o = getattr(o, part)
        return o

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(cls, handler(str))


GRef = Annotated[
    GlobalRef,
    PlainSerializer(str, return_type=str),
    AfterValidator(GlobalRef),
    WithJsonSchema({"type": "string"}, mode="serialization"),
]


def get_module(name: str) -> ModuleType:
    """
    >>> type(get_module('fncore'))
    <class 'module'>
    >>> get_module('fncore.c99')
    Traceback (most recent call last):
    ...
    ModuleNotFoundError: No module named 'fncore.c99'
    """
    if name in sys.modules:
        return sys.modules[name]
    return __import__(name, fromlist=[""])
