"""
Tags: ``{% name args %}`` elements.

A tag is registered as a parser function::

    def tag_parser(doc: Parser, start: Token, arguments: Parser) -> node

``doc`` is the document parser (positioned after the tag), ``start`` the tag
name token and ``arguments`` a parser over the tag's argument tokens. The
returned node must implement ``execute(frame, writer)``.
"""

import io
import random
from typing import Any, Callable, Dict, List, Optional

import structlog

from stencil.stencil_datatypes import write_text
from stencil.stencil_errors import ConfigurationError, TemplateError
from stencil.stencil_frame import ExecutionFrame
from stencil.stencil_lexer import IDENTIFIER, NUMBER, Token
from stencil.stencil_nodes import NodeWrapper

logger = structlog.get_logger()

TagParser = Callable[[Any, Token, Any], Any]


class TagRegistry:
    """Name to tag-parser map; frozen together with its template set."""

    def __init__(self, tags: Optional[Dict[str, TagParser]] = None):
        self._tags: Dict[str, TagParser] = dict(tags or {})
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, name: str, fn: TagParser, replace: bool = False):
        if self._frozen:
            raise ConfigurationError(f"cannot register tag '{name}': the tag registry is frozen")
        if name in self._tags:
            if not replace:
                raise ConfigurationError(f"tag with name '{name}' is already registered")
            logger.warning("stencil.tags.replaced", tag=name)
        self._tags[name] = fn
        logger.debug("stencil.tags.registered", tag=name)

    def freeze(self):
        self._frozen = True

    def get(self, name: str) -> Optional[TagParser]:
        return self._tags.get(name)

    def names(self) -> List[str]:
        return sorted(self._tags)

    def copy(self) -> "TagRegistry":
        return TagRegistry(dict(self._tags))

    def __contains__(self, name: str) -> bool:
        return name in self._tags


# =================================================================
# comment
# =================================================================

class TagCommentNode:
    def execute(self, frame, writer):
        pass


def tag_comment_parser(doc, start: Token, arguments):
    doc.skip_until_tag("endcomment")
    if arguments.count() != 0:
        raise arguments.error("Tag 'comment' does not take any argument.", start)
    return TagCommentNode()


# =================================================================
# lorem
# =================================================================

MAX_LOREM_COUNT = 100000

LOREM_TEXT = """Lorem ipsum dolor sit amet, consectetur adipisici elit, sed eiusmod tempor incidunt ut labore et dolore magna aliqua. Ut enim ad minim veniam, quis nostrud exercitation ullamco laboris nisi ut aliquid ex ea commodi consequat. Quis aute iure reprehenderit in voluptate velit esse cillum dolore eu fugiat nulla pariatur. Excepteur sint obcaecat cupiditat non proident, sunt in culpa qui officia deserunt mollit anim id est laborum.
Duis autem vel eum iriure dolor in hendrerit in vulputate velit esse molestie consequat, vel illum dolore eu feugiat nulla facilisis at vero eros et accumsan et iusto odio dignissim qui blandit praesent luptatum zzril delenit augue duis dolore te feugait nulla facilisi. Lorem ipsum dolor sit amet, consectetuer adipiscing elit, sed diam nonummy nibh euismod tincidunt ut laoreet dolore magna aliquam erat volutpat.
Ut wisi enim ad minim veniam, quis nostrud exerci tation ullamcorper suscipit lobortis nisl ut aliquip ex ea commodo consequat. Duis autem vel eum iriure dolor in hendrerit in vulputate velit esse molestie consequat, vel illum dolore eu feugiat nulla facilisis at vero eros et accumsan et iusto odio dignissim qui blandit praesent luptatum zzril delenit augue duis dolore te feugait nulla facilisi.
Nam liber tempor cum soluta nobis eleifend option congue nihil imperdiet doming id quod mazim placerat facer possim assum. Lorem ipsum dolor sit amet, consectetuer adipiscing elit, sed diam nonummy nibh euismod tincidunt ut laoreet dolore magna aliquam erat volutpat. Ut wisi enim ad minim veniam, quis nostrud exerci tation ullamcorper suscipit lobortis nisl ut aliquip ex ea commodo consequat.
Duis autem vel eum iriure dolor in hendrerit in vulputate velit esse molestie consequat, vel illum dolore eu feugiat nulla facilisis."""

LOREM_PARAGRAPHS = LOREM_TEXT.split("\n")
LOREM_WORDS = LOREM_TEXT.split()


class TagLoremNode:
    """``{% lorem [count] [w|p|b] [random] %}``

    w: words, p: HTML paragraphs, b: plain-text paragraphs (default).
    Without ``random`` the output starts with the classic "Lorem ipsum" text.
    """

    def __init__(self, start: Token, count: int = 1, method: str = "b", randomize: bool = False):
        self.token = start
        self.count = count
        self.method = method
        self.randomize = randomize

    def _pick(self, pool: List[str], i: int) -> str:
        if self.randomize:
            return random.choice(pool)
        return pool[i % len(pool)]

    def render(self) -> str:
        if self.method == "w":
            return " ".join(self._pick(LOREM_WORDS, i) for i in range(self.count))
        paragraphs = (self._pick(LOREM_PARAGRAPHS, i) for i in range(self.count))
        if self.method == "p":
            return "\n".join(f"<p>{par}</p>" for par in paragraphs)
        return "\n".join(paragraphs)

    def execute(self, frame, writer):
        if self.count > MAX_LOREM_COUNT:
            raise frame.error(TemplateError(f"max count for lorem is {MAX_LOREM_COUNT}"), self.token)
        write_text(frame, writer, self.render(), self.token)


def tag_lorem_parser(doc, start: Token, arguments):
    node = TagLoremNode(start)

    count_token = arguments.match_type(NUMBER)
    if count_token is not None:
        node.count = int(count_token.value)

    method_token = arguments.match_type(IDENTIFIER)
    if method_token is not None and method_token.value != "random":
        if method_token.value not in ("w", "p", "b"):
            raise arguments.error("lorem-method must be either 'w', 'p' or 'b'.", method_token)
        node.method = method_token.value
        method_token = None

    if method_token is not None or arguments.match_one(IDENTIFIER, "random") is not None:
        node.randomize = True

    if arguments.remaining() > 0:
        raise arguments.error("Malformed lorem-tag arguments.")
    return node


# =================================================================
# erroronmissingval
# =================================================================

class TagErrorOnMissingValNode:
    """Renders its body with the strict missing-value policy.

    The body output is compiled as a template of the same set and rendered a
    second time, also strictly, into the writer.
    """

    def __init__(self, start: Token, body: NodeWrapper):
        self.token = start
        self.body = body

    def execute(self, frame, writer):
        strict = frame.new_child()
        strict.allow_missing_val = False

        buffer = io.StringIO()
        self.body.execute(strict, buffer)

        template = frame.template.set.from_string(buffer.getvalue(), name=frame.template_name)
        inner = ExecutionFrame(
            template=template,
            public=frame.public,
            private=strict.private,
            shared=frame.shared,
            autoescape=frame.autoescape,
            allow_missing_val=False,
        )
        frame.log("stencil.tags.erroronmissingval", length=len(template.source))
        template.root.execute(inner, writer)


def tag_erroronmissingval_parser(doc, start: Token, arguments):
    if arguments.count() != 0:
        raise arguments.error("Tag 'erroronmissingval' does not take any argument.", start)
    wrapper, end_args = doc.wrap_until_tag("enderroronmissingval")
    if end_args.count() != 0:
        raise end_args.error("Tag 'enderroronmissingval' does not take any argument.", start)
    return TagErrorOnMissingValNode(start, wrapper)


BUILTIN_TAGS: Dict[str, TagParser] = {
    "comment": tag_comment_parser,
    "lorem": tag_lorem_parser,
    "erroronmissingval": tag_erroronmissingval_parser,
}


def default_tags() -> TagRegistry:
    return TagRegistry(BUILTIN_TAGS)
