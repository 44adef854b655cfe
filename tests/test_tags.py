import pytest
from stencil.stencil_errors import ConfigurationError, NoValueFound, ParseError, TemplateError
from stencil.stencil_runtime import TemplateSet
from stencil.stencil_tags import LOREM_PARAGRAPHS, MAX_LOREM_COUNT, TagRegistry, default_tags, tag_comment_parser


def render(source, ctx=None):
    return TemplateSet("tags").from_string(source).execute(ctx)

# --- Registry ---

def test_default_tags():
    assert default_tags().names() == ["comment", "erroronmissingval", "lorem"]

def test_tag_registry_duplicates_and_freeze():
    reg = TagRegistry()
    reg.register("comment", tag_comment_parser)
    with pytest.raises(ConfigurationError):
        reg.register("comment", tag_comment_parser)
    reg.freeze()
    with pytest.raises(ConfigurationError):
        reg.register("other", tag_comment_parser, replace=True)

def test_custom_tag():
    class NowNode:
        def execute(self, frame, writer):
            writer.write("NOW")

    def now_parser(doc, start, arguments):
        if arguments.remaining():
            raise arguments.error("now takes no arguments")
        return NowNode()

    reg = default_tags()
    reg.register("now", now_parser)
    assert TemplateSet("custom", tags=reg).from_string("[{% now %}]").execute() == "[NOW]"

# --- comment ---

def test_comment_block_renders_nothing():
    assert render("a{% comment %}hidden {{ x }} {% lorem %}{% endcomment %}b") == "ab"

def test_comment_takes_no_arguments():
    with pytest.raises(ParseError) as exc:
        render("{% comment note %}x{% endcomment %}")
    assert "does not take any argument" in exc.value.message

# --- lorem ---

def test_lorem_default_is_first_paragraph():
    assert render("{% lorem %}") == LOREM_PARAGRAPHS[0]

def test_lorem_words():
    assert render("{% lorem 3 w %}") == "Lorem ipsum dolor"

def test_lorem_html_paragraphs():
    out = render("{% lorem 2 p %}")
    assert out == f"<p>{LOREM_PARAGRAPHS[0]}</p>\n<p>{LOREM_PARAGRAPHS[1]}</p>"

def test_lorem_random_words():
    out = render("{% lorem 5 w random %}")
    assert len(out.split(" ")) == 5

def test_lorem_random_without_method():
    out = render("{% lorem 2 random %}")
    assert len(out.split("\n")) == 2

def test_lorem_bad_method():
    with pytest.raises(ParseError) as exc:
        render("{% lorem 1 x %}")
    assert "lorem-method" in exc.value.message

def test_lorem_malformed_arguments():
    with pytest.raises(ParseError):
        render("{% lorem 1 w junk %}")

def test_lorem_count_limit():
    with pytest.raises(TemplateError) as exc:
        render(f"{{% lorem {MAX_LOREM_COUNT + 1} w %}}")
    assert str(MAX_LOREM_COUNT) in exc.value.message

# --- erroronmissingval ---

def test_erroronmissingval_renders_present_values():
    src = "{% erroronmissingval %}Hi {{ name }}{% enderroronmissingval %}"
    assert render(src, {"name": "bob"}) == "Hi bob"

def test_erroronmissingval_fails_on_missing_value():
    src = "{% erroronmissingval %}{{ missing }}{% enderroronmissingval %}"
    with pytest.raises(NoValueFound) as exc:
        render(src, {})
    assert "missing" in exc.value.message

def test_erroronmissingval_does_not_leak_strictness():
    src = "{% erroronmissingval %}{{ name }}{% enderroronmissingval %}[{{ missing }}]"
    assert render(src, {"name": "bob"}) == "bob[]"

def test_erroronmissingval_renders_body_output_as_template():
    src = "{% erroronmissingval %}{{ code }}{% enderroronmissingval %}"
    assert render(src, {"code": "{{ name }}", "name": "bob"}) == "bob"

def test_erroronmissingval_requires_end_tag():
    with pytest.raises(ParseError) as exc:
        render("{% erroronmissingval %}{{ x }}")
    assert "enderroronmissingval" in exc.value.message
