import pytest
from stencil.stencil_config import EngineConfig
from stencil.stencil_context import Context
from stencil.stencil_filters import default_filters
from stencil.stencil_lexer import IDENTIFIER
from stencil.stencil_runtime import TemplateSet
from stencil.stencil_tags import default_tags
from stencil.stencil_value import Value


def render(source, ctx=None, **config):
    return TemplateSet("escape", config=EngineConfig(**config)).from_string(source).execute(ctx)

def test_strings_are_escaped_once():
    assert render("{{ s }}", {"s": "<a href='x'>&</a>"}) == "&lt;a href=&#x27;x&#x27;&gt;&amp;&lt;/a&gt;"

def test_explicit_escape_is_not_doubled():
    assert render("{{ s|escape }}|{{ s|e|e }}", {"s": "<&>"}) == "&lt;&amp;&gt;|&lt;&amp;&gt;"

def test_safe_filter_suppresses_escaping():
    assert render("{{ s|safe }}", {"s": "<b>"}) == "<b>"

def test_safe_anywhere_in_chain_suppresses_escaping():
    assert render("{{ s|safe|upper }}", {"s": "<b>"}) == "<B>"

def test_trusted_values_are_not_escaped():
    assert render("{{ s }}", {"s": Value("<i>", safe=True)}) == "<i>"

def test_non_strings_are_not_escaped():
    assert render("{{ items }}", {"items": ["<a>", "b"]}) == "<a>, b"

def test_autoescape_can_be_disabled():
    assert render("{{ s }}", {"s": "<b>"}, autoescape=False) == "<b>"

def test_configured_filter_names():
    reg = default_filters()
    reg.register("trusted", lambda v, p: Value(v.val))
    reg.register("brackets", lambda v, p: Value(f"[{v.string()}]"))
    config = EngineConfig(safe_filter="trusted", escape_filter="brackets")
    tpl = TemplateSet("names", config=config, filters=reg).from_string("{{ s }} {{ s|trusted }}")
    assert tpl.execute({"s": "x"}) == "[x] x"

def test_unregistered_escape_filter_is_configuration_error():
    from stencil.stencil_errors import ConfigurationError

    with pytest.raises(ConfigurationError):
        TemplateSet("bad", config=EngineConfig(escape_filter="missing")).from_string("{{ s }}")

def test_html_text_is_never_escaped():
    assert render("<p>{{ s }}</p>", Context({"s": "&"})) == "<p>&amp;</p>"

# --- Frame flag decides ---

class AutoescapeNode:
    def __init__(self, body, enabled):
        self.body = body
        self.enabled = enabled

    def execute(self, frame, writer):
        child = frame.new_child()
        child.autoescape = self.enabled
        self.body.execute(child, writer)

def autoescape_parser(doc, start, arguments):
    enabled = arguments.match_type(IDENTIFIER).value == "on"
    body, _ = doc.wrap_until_tag("endautoescape")
    return AutoescapeNode(body, enabled)

def render_with_autoescape_tag(source, ctx, **config):
    tags = default_tags()
    tags.register("autoescape", autoescape_parser)
    return TemplateSet("toggle", config=EngineConfig(**config), tags=tags).from_string(source).execute(ctx)

def test_tag_can_enable_escaping_when_config_disables_it():
    source = "{% autoescape on %}{{ s }}{% endautoescape %}|{{ s }}"
    assert render_with_autoescape_tag(source, {"s": "<b>"}, autoescape=False) == "&lt;b&gt;|<b>"

def test_tag_can_disable_escaping_when_config_enables_it():
    source = "{% autoescape off %}{{ s }}{% endautoescape %}|{{ s }}"
    assert render_with_autoescape_tag(source, {"s": "<b>"}) == "<b>|&lt;b&gt;"
