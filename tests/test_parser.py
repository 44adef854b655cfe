import pytest
from stencil.stencil_config import EngineConfig
from stencil.stencil_datatypes import (
    ArrayItemStep, AttrStep, IndexStep, KeywordArgument, Literal, NameStep, NilStep, SubscriptStep,
)
from stencil.stencil_errors import ParseError, SandboxViolation
from stencil.stencil_filters import FilteredVariable
from stencil.stencil_lexer import IDENTIFIER, NUMBER, SYMBOL, tokenize
from stencil.stencil_nodes import NodeHTML, NodeVariable
from stencil.stencil_parser import Parser
from stencil.stencil_resolver import VariableResolver
from stencil.stencil_runtime import TemplateSet


def expr_parser(source):
    """A parser positioned on the tokens inside ``{{ ... }}``."""
    tokens = tokenize("{{ " + source + " }}")
    return Parser("expr", tokens[1:-1])

def parse_expr(source):
    p = expr_parser(source)
    node = p.parse_expression()
    assert p.remaining() == 0, f"unparsed tokens: {p.tokens[p.idx:]}"
    return node

# --- Cursor ---

def test_cursor_api():
    p = Parser("c", tokenize("{% lorem 3 w %}"))
    assert p.count() == 5
    assert p.peek(SYMBOL, "{%") is not None
    assert p.peek_n(1, IDENTIFIER, "lorem") is not None
    assert p.match(SYMBOL, "%}") is None
    assert p.match(SYMBOL, "{%").value == "{%"
    assert p.match_one(IDENTIFIER, "if", "lorem").value == "lorem"
    assert p.match_type(NUMBER).value == "3"
    assert p.remaining() == 2
    assert p.current().value == "w"
    p.consume()
    p.consume()
    assert p.current() is None
    err = p.error("boom")
    assert isinstance(err, ParseError)
    assert err.line == 1

# --- Literals ---

@pytest.mark.parametrize("source, value", [
    ("42", 42),
    ("3.25", 3.25),
    ('"text"', "text"),
    ("true", True),
    ("false", False),
])
def test_literals(source, value):
    node = parse_expr(source)
    assert isinstance(node, Literal)
    assert node.value == value
    assert type(node.value) is type(value)

def test_array_literal():
    node = parse_expr('[1, "a", x]')
    assert isinstance(node, VariableResolver)
    assert all(isinstance(s, ArrayItemStep) for s in node.steps)
    assert len(node.steps) == 3

def test_empty_array_literal():
    node = parse_expr("[]")
    assert isinstance(node, VariableResolver)
    assert node.steps == []

# --- Paths ---

def test_dotted_path():
    node = parse_expr("user.addresses.0.city")
    assert node.steps == [NameStep("user"), NameStep("addresses"), IndexStep(0), NameStep("city")]
    assert node.path_string() == "user.addresses.0.city"

def test_identifier_with_digits_after_dot():
    node = parse_expr("mydict.51232_3")
    assert node.steps == [NameStep("mydict"), NameStep("51232_3")]

def test_subscript():
    node = parse_expr("data[key]")
    assert isinstance(node.steps[1], SubscriptStep)
    assert node.path_string() == "data.[subscript]"

def test_nil_step():
    node = parse_expr("x.nil")
    assert node.steps == [NameStep("x"), NilStep()]

def test_call_with_positional_and_keyword_args():
    node = parse_expr('f("a", 2, flag=true)')
    step = node.steps[0]
    assert step.is_call
    assert len(step.args) == 3
    assert isinstance(step.args[2], KeywordArgument)
    assert step.args[2].name == "flag"

def test_method_call_on_path():
    node = parse_expr("obj.greet()")
    assert node.steps[1].is_call
    assert node.steps[1].args == []

def test_attr_call():
    node = parse_expr('site.@title("x")')
    step = node.steps[1]
    assert isinstance(step, AttrStep)
    assert step.name == "title"
    assert len(step.args) == 1
    assert node.path_string() == "site.@title{attr args}"

def test_filters():
    node = parse_expr('name|default:"anon"|upper')
    assert isinstance(node, FilteredVariable)
    assert [f.name for f in node.filters] == ["default", "upper"]
    assert node.filter_applied("upper")
    assert not node.filter_applied("safe")

@pytest.mark.parametrize("source, message", [
    ("a.", "unexpected EOF"),
    ("a.+", "not allowed within a variable name"),
    ("f(1 2)", "missing comma"),
    ("[1 2]", "',' or ']' expected"),
    ("a[1", "']' expected"),
    ("a|nosuchfilter", "does not exist"),
    ("a|", "filter name must be an identifier"),
    ("+", "expected either a number"),
    ("f()()", "only names can be called"),
])
def test_expression_errors(source, message):
    p = expr_parser(source)
    with pytest.raises(ParseError) as exc:
        p.parse_expression()
        if p.remaining():
            raise p.error("trailing tokens")
    assert message in exc.value.message

# --- Documents ---

def test_parse_document_nodes():
    tokens = tokenize("Hi {{ name }}!")
    doc = Parser("doc", tokens).parse_document()
    assert [type(n) for n in doc.nodes] == [NodeHTML, NodeVariable, NodeHTML]

def test_variable_block_requires_close():
    with pytest.raises(ParseError) as exc:
        Parser("doc", tokenize("{{ a b }}")).parse_document()
    assert "'}}' expected" in exc.value.message

def test_unknown_tag():
    with pytest.raises(ParseError) as exc:
        Parser("doc", tokenize("{% frobnicate %}")).parse_document()
    assert "tag 'frobnicate' not found" in exc.value.message

def test_skip_until_tag_reports_eof():
    with pytest.raises(ParseError) as exc:
        Parser("doc", tokenize("{% comment %} never closed")).parse_document()
    assert "endcomment" in exc.value.message

def test_wrap_until_tag_returns_body_and_end_args():
    p = Parser("doc", tokenize("a{{ b }}{% endthing 1 %}rest"))
    wrapper, end_args = p.wrap_until_tag("endthing")
    assert wrapper.endtag == "endthing"
    assert len(wrapper.nodes) == 2
    assert end_args.count() == 1
    assert p.current().value == "rest"

# --- Sandbox ---

def test_banned_filter_is_rejected_at_parse_time():
    tpl_set = TemplateSet("sandbox", config=EngineConfig(banned_filters=frozenset({"upper"})))
    with pytest.raises(SandboxViolation) as exc:
        tpl_set.from_string("{{ name|upper }}")
    assert "upper" in str(exc.value)

def test_banned_tag_is_rejected_at_parse_time():
    tpl_set = TemplateSet("sandbox")
    tpl_set.ban_tag("lorem")
    with pytest.raises(SandboxViolation) as exc:
        tpl_set.from_string("{% lorem %}")
    assert "lorem" in str(exc.value)
    assert exc.value.line == 1
