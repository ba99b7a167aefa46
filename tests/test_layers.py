import pytest

from fncore.compose.layers import (
    CapabilityLayer,
    LayerChain,
    LayeredInstance,
    compose,
)
from fncore.errors import CompositionError


class Base:
    greeting = "hi"

    def call(self, request):
        return f"base({request})"

    def helper(self):
        return "base helper"


def layer(name, fn):
    return CapabilityLayer(name, {"call": fn})


def test_override_chain_top_to_bottom():
    a = layer("a", lambda self, r: f"a({self.previous(r)})")
    b = layer("b", lambda self, r: f"b({self.previous(r)})")
    chain = compose(compose(LayerChain(), a), b)
    instance = LayeredInstance(Base(), chain.snapshot(), chain)
    assert instance.dispatch("call", "x") == "b(a(base(x)))"


def test_last_applied_wins_without_delegation():
    a = layer("a", lambda self, r: "a")
    b = layer("b", lambda self, r: "b")
    assert LayeredInstance(Base(), (a, b)).dispatch("call", "x") == "b"
    assert LayeredInstance(Base(), (b, a)).dispatch("call", "x") == "a"


def test_same_layer_twice_runs_twice():
    counter = layer("counter", lambda self, r: self.previous(r) + 1)
    chain = LayerChain()
    chain.compose(counter)
    chain.compose(counter)
    assert len(chain) == 2

    class Zero:
        def call(self, request):
            return 0

    assert LayeredInstance(Zero(), chain.snapshot()).dispatch("call", None) == 2


def test_behaviors_see_other_layers_and_base():
    tagging = CapabilityLayer("tagging", {"tag": lambda self: "tagged"})
    using = layer("using", lambda self, r: f"{self.tag()} {self.helper()} {self.greeting}")
    instance = LayeredInstance(Base(), (tagging, using))
    assert instance.dispatch("call", "x") == "tagged base helper hi"
    assert instance.tag() == "tagged"
    assert instance.helper() == "base helper"


def test_previous_without_lower_behavior():
    lonely = CapabilityLayer("lonely", {"extra": lambda self: self.previous()})
    with pytest.raises(CompositionError):
        LayeredInstance(Base(), (lonely,)).dispatch("extra")


def test_frame_assignments_go_to_target():
    remember = layer("remember", lambda self, r: setattr(self, "seen", r) or self.previous(r))
    base = Base()
    assert LayeredInstance(base, (remember,)).dispatch("call", "x") == "base(x)"
    assert base.seen == "x"


def test_from_class():
    class Mixin:
        def shout(self, text):
            return text.upper()

        @staticmethod
        def version():
            return 2

        def _private(self):
            return "hidden"

    class Child(Mixin):
        def shout(self, text):
            return text.upper() + "!"

    mixin = CapabilityLayer.from_class(Child)
    assert mixin.name.endswith("Child")
    assert sorted(mixin.behaviors) == ["shout", "version"]
    instance = LayeredInstance(Base(), (mixin,))
    assert instance.shout("hey") == "HEY!"
    assert instance.version() == 2


def test_behavior_decorator():
    audit = CapabilityLayer("audit")

    @audit.behavior
    def call(self, request):
        return ("audited", self.previous(request))

    assert audit.defines("call")
    assert LayeredInstance(Base(), (audit,)).dispatch("call", 1) == ("audited", "base(1)")


def test_ensure():
    existing = CapabilityLayer("x")
    assert CapabilityLayer.ensure(existing) is existing
    assert CapabilityLayer.ensure({"call": lambda self, r: r}).defines("call")
    with pytest.raises(CompositionError):
        CapabilityLayer.ensure(42)
    with pytest.raises(CompositionError):
        CapabilityLayer("bad", {"call": "not callable"})  # pyright: ignore


def test_sealed_chain():
    chain = LayerChain(sealed=True)
    with pytest.raises(CompositionError):
        chain.compose(CapabilityLayer("x"))
    chain = LayerChain()
    chain.compose(CapabilityLayer("x"))
    chain.seal()
    assert chain.sealed
    with pytest.raises(CompositionError):
        chain.compose(CapabilityLayer("y"))
    assert len(chain) == 1


def test_snapshot_is_stable():
    chain = LayerChain()
    first = CapabilityLayer("first")
    chain.compose(first)
    snapshot = chain.snapshot()
    chain.compose(CapabilityLayer("second"))
    assert snapshot == (first,)
    assert len(chain.snapshot()) == 2
    assert first in chain


def test_include_from_instance_extends_own_snapshot_and_chain():
    chain = LayerChain()
    instance = LayeredInstance(Base(), chain.snapshot(), chain)
    other = LayeredInstance(Base(), chain.snapshot(), chain)
    instance.include(layer("late", lambda self, r: "late"))
    assert instance.dispatch("call", "x") == "late"
    assert other.dispatch("call", "x") == "base(x)"
    assert [la.name for la in chain] == ["late"]


def test_compose_once_skips_included_layer():
    class Mixin:
        def tag(self):
            return "tagged"

    audit = CapabilityLayer("audit")
    chain = LayerChain()
    chain.compose(audit)
    chain.compose(audit, once=True)
    chain.compose(Mixin, once=True)
    chain.compose(Mixin, once=True)
    assert [la.name for la in chain] == ["audit", Mixin.__qualname__]
    chain.compose(audit)
    assert len(chain) == 3


def test_include_from_instance_is_idempotent():
    chain = LayerChain()
    tagging = CapabilityLayer("tagging", {"tag": lambda self: "tagged"})
    for _ in range(3):
        instance = LayeredInstance(Base(), chain.snapshot(), chain)
        instance.include(tagging)
        instance.include(tagging)
        assert instance.layers == (tagging,)
    assert len(chain) == 1


def test_include_once_on_sealed_chain_with_layer_present():
    tagging = CapabilityLayer("tagging")
    chain = LayerChain()
    chain.compose(tagging)
    chain.seal()
    LayeredInstance(Base(), chain.snapshot(), chain).include(tagging)
    with pytest.raises(CompositionError):
        LayeredInstance(Base(), chain.snapshot(), chain).include(CapabilityLayer("other"))
