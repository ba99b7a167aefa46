import json
from typing import final

import pytest
from pydantic import BaseModel

from fncore import GlobalRef, GRef


def s2():
    return 2


@final
class M3:
    def __init__(self, store=None):
        self.store = store

    def call(self, request):
        return 3 * request

    class Inner:
        def call(self, request):
            return request


class RefHolder(BaseModel):
    ref: GRef


def test_refs():
    for gref in [GlobalRef("json"), GlobalRef(json)]:
        assert not gref.is_function()
        assert not gref.is_class()
        assert gref.is_module()
        assert gref.get_module() == json

    gref = GlobalRef(s2)
    assert gref.is_function()
    assert not gref.is_class()
    assert not gref.is_module()
    assert gref.get_instance() == s2
    assert str(gref) == "tests.test_gref:s2"

    gref = GlobalRef(M3)
    assert not gref.is_function()
    assert gref.is_class()
    assert gref.get_instance() == M3


def test_nested_qualname():
    gref = GlobalRef(M3.Inner)
    assert str(gref) == "tests.test_gref:M3.Inner"
    assert gref.get_instance() is M3.Inner
    assert gref.is_importable()


def test_local_objects_are_not_importable():
    def local():
        pass

    assert not GlobalRef(local).is_importable()
    assert not GlobalRef(lambda: None).is_importable()


def test_malformed_refs():
    with pytest.raises(AssertionError):
        GlobalRef("a:b:c")
    with pytest.raises(AssertionError):
        GlobalRef("")
    with pytest.raises(AttributeError):
        GlobalRef("tests.test_gref:missing").get_instance()


def test_equality_and_hash():
    assert GlobalRef(s2) == "tests.test_gref:s2"
    assert len({GlobalRef(s2), GlobalRef("tests.test_gref:s2")}) == 1


def test_pydantic_field():
    holder = RefHolder.model_validate({"ref": "tests.test_gref:M3"})
    assert isinstance(holder.ref, GlobalRef)
    assert holder.ref.get_instance() is M3
    assert holder.model_dump(mode="json") == {"ref": "tests.test_gref:M3"}
    assert RefHolder.model_json_schema(mode="serialization")["properties"]["ref"]["type"] == "string"
