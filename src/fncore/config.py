"""
Config: declarative function definitions.

Bootstrap code can describe functions as data (JSON, TOML, environment) and
build them with `Function.from_config`:

```python
from fncore.config import FunctionConfig
from fncore.function import Function

config = FunctionConfig.model_validate(
    {"name": "hello", "type": "http", "callable": "myapp.handlers:hello"}
)
function = Function.from_config(config)
```
"""

from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, Field, model_validator

from fncore import GRef

ConfigType = TypeVar("ConfigType", bound=BaseModel)

FunctionType = Literal["http", "cloud_event", "typed", "startup_task"]

FUNCTION_TYPES: tuple[FunctionType, ...] = ("http", "cloud_event", "typed", "startup_task")


class Configurable(Generic[ConfigType]):
    """
    A configurable class that takes a BaseModel config in constructor
    """

    config: ConfigType

    def __init__(self, config: ConfigType) -> None:
        self.config = config


class FunctionConfig(BaseModel):
    """
    Identity and options of a function.

    >>> FunctionConfig(name="f", type="http").model_dump(mode="json")
    {'name': 'f', 'type': 'http', 'callable': None, 'request_class': None, 'response_class': None, 'sealed': False}
    >>> FunctionConfig(type="startup_task").name is None
    True
    >>> try:
    ...     FunctionConfig(type="http")
    ... except ValueError as e:
    ...     print(e.errors()[0]["msg"])
    Value error, http function requires a name
    """

    name: str | None = Field(default=None, description="Function name, optional for startup tasks")
    type: FunctionType = Field(description="Kind of function")
    callable: GRef | None = Field(
        default=None, description="Reference to the function's callable, `module:Name`"
    )
    request_class: GRef | None = Field(
        default=None, description="Reference to the request class of a typed function"
    )
    response_class: GRef | None = Field(
        default=None, description="Reference to the response class of a typed function"
    )
    sealed: bool = Field(default=False, description="Forbid composing layers after definition")

    @model_validator(mode="after")
    def check_kind(self) -> "FunctionConfig":
        if self.type != "startup_task" and not self.name:
            raise ValueError(f"{self.type} function requires a name")
        if self.type != "typed" and (self.request_class or self.response_class):
            raise ValueError(f"request/response classes only apply to typed functions, not {self.type}")
        return self
