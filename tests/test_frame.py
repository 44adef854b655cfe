from stencil.stencil_config import VERSION, EngineConfig
from stencil.stencil_context import Context
from stencil.stencil_errors import NoValueFound, TemplateError
from stencil.stencil_frame import META_KEY, NIL_KEY, ExecutionFrame
from stencil.stencil_runtime import TemplateSet


def _frame(**config):
    tpl = TemplateSet("frames", config=EngineConfig(**config)).from_string("", name="t.html")
    return ExecutionFrame.top_level(tpl, Context({"user": "ann"}))

def test_top_level_frame_metadata_and_nil():
    frame = _frame()
    assert frame.private.get(META_KEY) == {"version": VERSION}
    assert frame.public.lookup(NIL_KEY) == (None, True)
    assert frame.autoescape is True
    assert frame.allow_missing_val is True
    assert frame.template_name == "t.html"

def test_top_level_frame_follows_config():
    frame = _frame(autoescape=False, allow_missing_val=False)
    assert frame.autoescape is False
    assert frame.allow_missing_val is False

def test_lookup_private_shadows_public():
    frame = _frame()
    assert frame.lookup("user") == ("ann", True)
    frame.private.set("user", "bob")
    assert frame.lookup("user") == ("bob", True)
    assert frame.lookup("nobody") == (None, False)

def test_child_private_isolation_both_directions():
    parent = _frame()
    parent.private.set("loop", 1)
    child = parent.new_child()
    assert child.private.get("loop") == 1

    child.private.set("inner", 2)
    parent.private.set("outer", 3)
    assert "inner" not in parent.private
    assert "outer" not in child.private

def test_child_shares_public_and_shared():
    parent = _frame()
    child = ExecutionFrame.child(parent)
    assert child.public is parent.public
    assert child.shared is parent.shared
    child.shared.set("note", "x")
    assert parent.shared.get("note") == "x"

def test_each_top_level_frame_gets_fresh_shared():
    a = _frame()
    b = _frame()
    assert a.shared is not b.shared

def test_error_adds_location():
    frame = _frame()
    err = frame.error(NoValueFound("No value found for a.b"))
    assert err.template_name == "t.html"
    wrapped = frame.error(ValueError("boom"))
    assert isinstance(wrapped, TemplateError)
    assert isinstance(wrapped.cause, ValueError)
