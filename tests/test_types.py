import pytest
from pydantic import BaseModel, ValidationError

from fncore import types
from fncore.types import (
    JsonBase,
    decode_request,
    encode_response,
    encode_response_text,
    has_decoder,
    has_encoder,
)


class Greeting(JsonBase):
    name: str
    excited: bool = False


class PlainModel(BaseModel):
    n: int


class Celsius:
    def __init__(self, degrees: float):
        self.degrees = degrees

    @classmethod
    def decode_json(cls, data):
        return cls(float(data))

    def to_json(self):
        return f"{self.degrees}C"


def test_decode_json_base():
    g = Greeting.decode_json('{"name": "ada"}')
    assert g.name == "ada"
    assert not g.excited
    assert Greeting.decode_json(b'{"name": "bob", "excited": true}').excited
    assert Greeting.decode_json({"name": "cy"}).to_json() == {"name": "cy", "excited": False}


def test_decode_errors_propagate():
    with pytest.raises(ValidationError):
        decode_request(Greeting, '{"excited": true}')
    with pytest.raises(TypeError):
        decode_request(int, "1")


def test_decoders_and_encoders():
    assert has_decoder(Greeting)
    assert has_decoder(PlainModel)
    assert has_decoder(Celsius)
    assert not has_decoder(dict)
    assert has_encoder(Greeting)
    assert has_encoder(PlainModel(n=1))
    assert has_encoder(Celsius)
    assert not has_encoder(str)


def test_request_round_trip_through_custom_class():
    c = decode_request(Celsius, "21.5")
    assert c.degrees == 21.5
    assert encode_response(c) == "21.5C"
    assert encode_response_text(c) == "21.5C"


def test_plain_model():
    assert decode_request(PlainModel, '{"n": 2}').n == 2
    assert decode_request(PlainModel, {"n": "3"}).n == 3
    assert encode_response(PlainModel(n=4)) == {"n": 4}


def test_encode_response_text():
    assert encode_response_text({"a": [1, 2]}) == '{"a": [1, 2]}'
    assert encode_response_text("plain") == '"plain"'
    assert encode_response_text(Greeting(name="x")) == '{"name": "x", "excited": false}'


def test_json_dumps_can_be_patched(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(types, "json_dumps", lambda o: "patched")
    assert encode_response_text([1]) == "patched"


def test_json_loads_can_be_patched(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(types, "json_loads", lambda data: {"name": "patched"})
    assert decode_request(Greeting, "ignored").name == "patched"
    monkeypatch.setattr(types, "json_loads", lambda data: {"n": 7})
    assert decode_request(PlainModel, "ignored").n == 7
