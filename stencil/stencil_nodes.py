"""
Document nodes: the compiled form of a template.

Every node implements ``execute(frame, writer)`` and writes its output to
``writer`` (anything with a ``write(str)`` method).
"""

from typing import Any, List, Optional

from stencil.stencil_datatypes import Evaluator, write_text
from stencil.stencil_errors import HostError, TemplateError
from stencil.stencil_filters import FilterCall
from stencil.stencil_lexer import SPACE_CHARS, Token


class NodeDocument:
    """The root node of a template."""

    def __init__(self, nodes: Optional[List[Any]] = None):
        self.nodes: List[Any] = list(nodes or [])

    def execute(self, frame, writer):
        for node in self.nodes:
            node.execute(frame, writer)

    def __repr__(self) -> str:
        return f"NodeDocument({self.nodes!r})"


class NodeHTML:
    """Literal template text."""

    def __init__(self, token: Token):
        self.token = token
        self.trim_left = token.trim_left
        self.trim_right = token.trim_right

    def text(self) -> str:
        res = self.token.value
        if self.trim_left:
            res = res.lstrip(SPACE_CHARS)
        if self.trim_right:
            res = res.rstrip(SPACE_CHARS)
        return res

    def execute(self, frame, writer):
        write_text(frame, writer, self.text(), self.token)

    def __repr__(self) -> str:
        return f"NodeHTML({self.token.value!r})"


class NodeVariable:
    """A printed expression, ``{{ expr }}``, with autoescaping.

    The escape filter is always attached; the frame's autoescape flag decides
    whether it runs. It runs at most once, and only when the expression
    produced untrusted text and did not pass through the configured safe
    filter.
    """

    def __init__(self, expr: Evaluator, token: Token, escape: FilterCall):
        self.expr = expr
        self.token = token
        self.escape = escape

    def execute(self, frame, writer):
        value = self.expr.evaluate(frame)
        if (
            frame.autoescape
            and value.is_string()
            and not value.safe
            and not self.expr.filter_applied(frame.config.safe_filter)
        ):
            try:
                value = self.escape.execute(value, frame)
            except Exception as e:
                raise frame.error(e, self.token)
        try:
            text = value.string()
        except TemplateError as e:
            raise frame.error(e, self.token)
        except Exception as e:
            err = HostError(f"converting {type(value.val).__name__} to text failed: {type(e).__name__}: {e}", cause=e)
            raise frame.error(err, self.token) from e
        write_text(frame, writer, text, self.token)

    def __repr__(self) -> str:
        return f"NodeVariable({self.expr!r})"


class NodeWrapper:
    """A tag body: the nodes up to (not including) the closing tag."""

    def __init__(self, nodes: Optional[List[Any]] = None, endtag: str = ""):
        self.nodes: List[Any] = list(nodes or [])
        self.endtag = endtag

    def execute(self, frame, writer):
        for node in self.nodes:
            node.execute(frame, writer)

    def __repr__(self) -> str:
        return f"NodeWrapper(endtag={self.endtag!r}, {len(self.nodes)} nodes)"
