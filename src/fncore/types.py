"""
Types: request and response classes of `typed` functions.

A `typed` function may name a `request_class`. The server adapter decodes
the wire payload into it before calling the function, and encodes the
returned value back. A request class qualifies when it can decode:

- a pydantic `BaseModel` subclass (JSON text is parsed with `json_loads`, then `model_validate`), or
- any class with a `decode_json(data)` classmethod.

Return values are encoded with their `to_json()` method when present,
`model_dump(mode="json")` for pydantic models, and passed through otherwise.

```python
from fncore.types import JsonBase, decode_request, encode_response

class Point(JsonBase):
    x: int
    y: int

p = decode_request(Point, '{"x": 1, "y": 2}')
encode_response(p)  # {"x": 1, "y": 2}
```
"""

from __future__ import annotations

import json as _json
from typing import Any, Self

from pydantic import BaseModel

# using this to allow for monkeypatching
json_loads = _json.loads
json_dumps = _json.dumps


def base_model_to_json(bm: BaseModel) -> Any:
    return bm.model_dump(mode="json")


class JsonBase(BaseModel):
    """
    Pydantic model exposing the `decode_json` / `to_json` pair.

    >>> class Point(JsonBase):
    ...     x: int
    >>> Point.decode_json('{"x": 3}').x
    3
    >>> Point.decode_json({"x": "4"}).to_json()
    {'x': 4}
    """

    @classmethod
    def decode_json(cls, data: Any) -> Self:
        if isinstance(data, (str, bytes, bytearray)):
            return cls.model_validate(json_loads(data))
        return cls.model_validate(data)

    def to_json(self) -> Any:
        return base_model_to_json(self)


def has_decoder(cls: Any) -> bool:
    """
    >>> has_decoder(JsonBase), has_decoder(BaseModel), has_decoder(int), has_decoder(type)
    (True, True, False, False)
    """
    if isinstance(cls, type) and issubclass(cls, BaseModel):
        return True
    return callable(getattr(cls, "decode_json", None))


def has_encoder(o: Any) -> bool:
    if isinstance(o, BaseModel) or (isinstance(o, type) and issubclass(o, BaseModel)):
        return True
    return callable(getattr(o, "to_json", None))


def decode_request(request_class: type | None, data: Any) -> Any:
    """
    >>> decode_request(None, {"raw": True})
    {'raw': True}
    """
    if request_class is None:
        return data
    decode_json = getattr(request_class, "decode_json", None)
    if callable(decode_json):
        return decode_json(data)
    if issubclass(request_class, BaseModel):
        if isinstance(data, (str, bytes, bytearray)):
            return request_class.model_validate(json_loads(data))
        return request_class.model_validate(data)
    raise TypeError(f"{request_class!r} cannot decode wire data")


def encode_response(value: Any) -> Any:
    """
    >>> encode_response(5)
    5
    """
    to_json = getattr(value, "to_json", None)
    if callable(to_json):
        return to_json()
    if isinstance(value, BaseModel):
        return base_model_to_json(value)
    return value


def encode_response_text(value: Any) -> str:
    """Encoded value as JSON text; strings from `to_json()` are taken as already encoded."""
    encoded = encode_response(value)
    if isinstance(encoded, str) and encoded is not value:
        return encoded
    return json_dumps(encoded)
