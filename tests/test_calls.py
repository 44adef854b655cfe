import collections.abc
import functools
from typing import Any, Optional

import pytest
from stencil.stencil_calls import call_shape
from stencil.stencil_config import EngineConfig
from stencil.stencil_errors import ArgumentOrderError, ArityMismatch, HostError, TypeMismatch
from stencil.stencil_frame import ExecutionFrame
from stencil.stencil_runtime import TemplateSet
from stencil.stencil_value import Value


def render(source, ctx=None, **config):
    return TemplateSet("calls", config=EngineConfig(**config)).from_string(source).execute(ctx)


def three(a, b, c):
    return f"{a}{b}{c}"

def variadic(first, *rest):
    return "|".join(str(x) for x in (first,) + rest)

def with_default(a, b="B"):
    return a + b

def takes_kwargs(a, **kwargs):
    return f"{a}:" + ",".join(f"{k}={v.string()}" for k, v in sorted(kwargs.items()))

def wants_int(n: int):
    return n * 2

def wants_sequence(items: collections.abc.Sequence):
    return len(items)

def wants_optional(n: Optional[int]):
    return "none" if n is None else n

def wants_value(v: Value):
    return f"{type(v).__name__}:{v.safe}"

def wants_any(x: Any, y: object):
    return f"{x}{y}"

def frame_named(frame, x):
    return f"{type(frame).__name__}:{x}"

def frame_annotated(f: ExecutionFrame):
    return f.template_name

def named_and_kwargs(a, b=None, **kwargs):
    return f"{a}:{b}:" + ",".join(sorted(kwargs))

def frame_and_kwargs(frame, **kwargs):
    return sorted(kwargs)

def unresolved_hints(v: "Value", other: "UndefinedName"):
    return f"{type(v).__name__}:{other}"

def explode():
    raise ValueError("kaboom")

# --- Arity ---

def test_exact_arity():
    assert render('{{ f("x", 1, true) }}', {"f": three}) == "x1True"

def test_too_few_arguments_is_arity_mismatch():
    with pytest.raises(ArityMismatch) as exc:
        render('{{ f("x", 1) }}', {"f": three})
    assert "'f'" in exc.value.message
    assert "(3)" in exc.value.message and "(2)" in exc.value.message

def test_variadic_accepts_extra_arguments():
    assert render('{{ f("x", 1, 2) }}', {"f": variadic}) == "x|1|2"
    assert render('{{ f("x") }}', {"f": variadic}) == "x"

def test_variadic_still_needs_fixed_arguments():
    with pytest.raises(ArityMismatch):
        render("{{ f() }}", {"f": variadic})

def test_defaults_are_optional():
    assert render('{{ f("a") }}{{ f("a", "b") }}', {"f": with_default}) == "aBab"
    with pytest.raises(ArityMismatch):
        render('{{ f("a", "b", "c") }}', {"f": with_default})

# --- Keyword arguments ---

def test_keyword_arguments_arrive_as_named_values():
    assert render('{{ f(1, x=2, y="z") }}', {"f": takes_kwargs}) == "1:x=2,y=z"

def test_keyword_without_kwargs_is_arity_mismatch():
    with pytest.raises(ArityMismatch) as exc:
        render("{{ f(1, 2, c=3) }}", {"f": three})
    assert "keyword argument" in exc.value.message

def test_keyword_naming_a_parameter_is_arity_mismatch():
    with pytest.raises(ArityMismatch) as exc:
        render("{{ f(1, b=2) }}", {"f": named_and_kwargs})
    assert "'b'" in exc.value.message

def test_keyword_repeating_a_positional_is_arity_mismatch():
    with pytest.raises(ArityMismatch):
        render("{{ f(1, a=2) }}", {"f": takes_kwargs})

def test_keyword_naming_the_frame_is_arity_mismatch():
    with pytest.raises(ArityMismatch):
        render("{{ f(frame=1) }}", {"f": frame_and_kwargs})

def test_other_keywords_still_reach_kwargs():
    assert render("{{ f(1, c=3) }}", {"f": named_and_kwargs}) == "1:None:c"

@pytest.mark.parametrize("fn", [three, takes_kwargs, variadic])
def test_positional_after_keyword_is_argument_order_error(fn):
    with pytest.raises(ArgumentOrderError):
        render("{{ f(name=1, 2) }}", {"f": fn})

# --- Types ---

def test_exact_type_match():
    assert render("{{ f(21) }}", {"f": wants_int}) == "42"
    with pytest.raises(TypeMismatch) as exc:
        render('{{ f("21") }}', {"f": wants_int})
    assert "int" in exc.value.message and "str" in exc.value.message

def test_bool_is_not_an_int_argument():
    with pytest.raises(TypeMismatch):
        render("{{ f(true) }}", {"f": wants_int})

def test_abstract_parameter_accepts_any_instance():
    assert render("{{ f(items) }}", {"f": wants_sequence, "items": (1, 2, 3)}) == "3"
    with pytest.raises(TypeMismatch):
        render("{{ f(5) }}", {"f": wants_sequence})

def test_optional_parameter():
    assert render("{{ f(nil) }}{{ f(3) }}", {"f": wants_optional}) == "none3"

def test_value_parameter_receives_wrapper():
    assert render("{{ f(s|safe) }}", {"f": wants_value, "s": "x"}) == "Value:True"

def test_string_value_annotation_receives_wrapper():
    assert render("{{ f(s, 2) }}", {"f": unresolved_hints, "s": "x"}) == "Value:2"

def test_any_and_object_parameters():
    assert render('{{ f(1, "a") }}', {"f": wants_any}) == "1a"

# --- Frame injection ---

def test_frame_parameter_by_name():
    assert render("{{ f(7) }}", {"f": frame_named}) == "ExecutionFrame:7"

def test_frame_parameter_by_annotation():
    tpl = TemplateSet("calls").from_string("{{ f() }}", name="frame.html")
    assert tpl.execute({"f": frame_annotated}) == "frame.html"

# --- Host callables ---

def test_host_exception_becomes_host_error():
    with pytest.raises(HostError) as exc:
        render("{{ f() }}", {"f": explode})
    assert isinstance(exc.value.cause, ValueError)
    assert "kaboom" in exc.value.message
    assert exc.value.line == 1

def test_partial_is_invocable():
    assert render('{{ f("c") }}', {"f": functools.partial(three, "a", "b")}) == "abc"

def test_builtin_function():
    assert render("{{ f(items) }}", {"f": len, "items": [1, 2]}) == "2"

def test_call_shape_is_cached():
    assert call_shape(three) is call_shape(three)
    shape = call_shape(three)
    assert shape.required == 3
    assert shape.varargs is None

def test_bound_method_shape_skips_self():
    class Greeter:
        def hello(self, name):
            return f"hello {name}"

    g = Greeter()
    assert call_shape(g.hello).required == 1
    assert render("{{ g.hello('bo') }}", {"g": g}) == "hello bo"
