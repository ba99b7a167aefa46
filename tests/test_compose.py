import functools

import pytest

from fncore.compose import ArityAdapter, Method, invoke
from fncore.errors import ConfigurationError


def zero():
    return "zero"


def one(request):
    return ("one", request)


def optional(request=None):
    return ("optional", request)


class Handler:
    def call(self, request):
        return request

    def no_args(self):
        return "nothing"


def test_arity_of_functions():
    assert Method(zero).arity == 0
    assert Method(one).arity == 1
    assert Method(optional).arity == 1
    assert Method(lambda *args: args).arity == 1
    assert Method(lambda **kwargs: kwargs).arity == 0


def test_arity_of_methods():
    assert Method(Handler().call).arity == 1
    assert Method(Handler().no_args).arity == 0
    assert Method(Handler.call, skip_self=True).arity == 1
    assert Method(Handler.no_args, skip_self=True).arity == 0


def test_arity_without_signature_assumes_one():
    assert Method(print).arity == 1
    assert ArityAdapter(functools.partial(one)).arity == 1


def test_unsupported_arity():
    with pytest.raises(ConfigurationError):
        ArityAdapter(lambda a, b: None)
    with pytest.raises(ConfigurationError):
        ArityAdapter(lambda a, *, b: None)


def test_zero_parameter_ignores_argument():
    assert ArityAdapter(zero).invoke("ignored") == "zero"
    assert invoke(zero, "ignored") == "zero"


def test_one_parameter_receives_argument():
    assert ArityAdapter(one).invoke("the-request") == ("one", "the-request")
    assert invoke(optional, None) == ("optional", None)


def test_precomputed_arity():
    adapter = ArityAdapter(one, arity=1)
    assert adapter.invoke(3) == ("one", 3)


def test_method_name_and_gref():
    m = Method(one)
    assert m.name == "one"
    assert str(m.gref) == "tests.test_compose:one"
    assert Method(Handler().call).gref is None
    assert Method(Handler().call).name == "Handler.call"
    assert m.accepts_keyword("request")
    assert not m.accepts_keyword("store")
