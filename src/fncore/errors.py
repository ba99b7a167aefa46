"""
Errors raised by the invocation core.

Failures raised by user logic are never wrapped: they propagate from
`Function.call` exactly as raised.
"""

from typing import Any


class FunctionsError(Exception):
    """Base class for errors raised by fncore itself."""


class ConfigurationError(FunctionsError, ValueError):
    """
    Invalid function definition: unknown type, bad `request_class`,
    unsupported callable arity or unresolvable callable source.

    Always raised at definition time, never deferred to the first call.
    """


class CompositionError(FunctionsError):
    """Illegal capability composition, raised at `include` time."""


class GlobalResolutionFailure(FunctionsError):
    """
    A lazy global initializer failed. The key stays pending, so a later
    `get` runs the initializer again.

    >>> str(GlobalResolutionFailure("db", "boom"))
    "lazy global 'db' failed: boom"
    """

    key: Any

    def __init__(self, key: Any, reason: str) -> None:
        super().__init__(f"lazy global {key!r} failed: {reason}")
        self.key = key
