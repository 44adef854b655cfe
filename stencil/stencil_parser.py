"""
Parser for stencil templates.

The Parser works on the token list produced by the lexer. One parser walks
the whole document; every tag gets a second parser over its own argument
tokens, so tag implementations use the same cursor API (``match``,
``match_type``, ``peek``, ``remaining`` ...) for both.

Expression grammar::

    expression       := variable_or_literal { "|" filter }
    filter           := IDENT [ ":" variable_or_literal ]
    variable_or_lit  := NUMBER [ "." NUMBER ] | STRING | "true" | "false"
                      | "[" [ expression { "," expression } ] "]"
                      | IDENT { "." (IDENT | NUMBER | "@" IDENT [ call_args ])
                              | "[" expression "]"
                              | call_args }
    call_args        := "(" [ argument { "," argument } ] ")"
    argument         := IDENT "=" expression | expression
"""

from typing import Any, List, Optional, Tuple

from stencil.stencil_config import EngineConfig
from stencil.stencil_datatypes import (
    ArrayItemStep, AttrStep, Evaluator, IndexStep, KeywordArgument, Literal, NameStep, NilStep, SubscriptStep,
)
from stencil.stencil_errors import ConfigurationError, ParseError, SandboxViolation
from stencil.stencil_filters import FilterCall, FilteredVariable, FilterRegistry, default_filters
from stencil.stencil_lexer import HTML, IDENTIFIER, KEYWORD, NUMBER, STRING, SYMBOL, Token
from stencil.stencil_nodes import NodeDocument, NodeHTML, NodeVariable, NodeWrapper
from stencil.stencil_resolver import VariableResolver
from stencil.stencil_tags import TagRegistry, default_tags


class Parser:
    def __init__(self, name: Optional[str], tokens: List[Token], template: Any = None):
        self.name = name
        self.tokens = tokens
        self.template = template
        self.idx = 0
        self.last_token = tokens[-1] if tokens else None

        template_set = getattr(template, "set", None)
        if template_set is not None:
            self.config: EngineConfig = template_set.config
            self.filters: FilterRegistry = template_set.filters
            self.tags: TagRegistry = template_set.tags
        else:
            self.config = EngineConfig()
            self.filters = default_filters()
            self.tags = default_tags()

    # =================================================================
    # Cursor
    # =================================================================

    def current(self) -> Optional[Token]:
        return self.get(self.idx)

    def get(self, i: int) -> Optional[Token]:
        if 0 <= i < len(self.tokens):
            return self.tokens[i]
        return None

    def consume(self):
        self.idx += 1

    def consume_n(self, n: int):
        self.idx += n

    def match(self, kind: str, value: str) -> Optional[Token]:
        """Consumes and returns the current token if it is kind/value."""
        t = self.peek(kind, value)
        if t is not None:
            self.consume()
        return t

    def match_type(self, kind: str) -> Optional[Token]:
        t = self.peek_type(kind)
        if t is not None:
            self.consume()
        return t

    def match_one(self, kind: str, *values: str) -> Optional[Token]:
        """Like match, accepting any of several values."""
        for value in values:
            t = self.match(kind, value)
            if t is not None:
                return t
        return None

    def peek(self, kind: str, value: Optional[str] = None) -> Optional[Token]:
        return self.peek_n(0, kind, value)

    def peek_type(self, kind: str) -> Optional[Token]:
        return self.peek_n(0, kind)

    def peek_n(self, n: int, kind: str, value: Optional[str] = None) -> Optional[Token]:
        t = self.get(self.idx + n)
        if t is not None and t.is_(kind, value):
            return t
        return None

    def remaining(self) -> int:
        return len(self.tokens) - self.idx

    def count(self) -> int:
        return len(self.tokens)

    def error(self, message: str, token: Optional[Token] = None) -> ParseError:
        """Builds a ParseError located at token (default: the current or the last token)."""
        token = token or self.current() or self.last_token
        return ParseError(message, template_name=self.name, token=token)

    # =================================================================
    # Documents
    # =================================================================

    def parse_document(self) -> NodeDocument:
        doc = NodeDocument()
        while self.remaining() > 0:
            doc.nodes.append(self.parse_document_element())
        return doc

    def parse_document_element(self):
        t = self.current()
        if t.kind == HTML:
            self.consume()
            return NodeHTML(t)
        if t.is_(SYMBOL, "{{"):
            return self.parse_variable_element()
        if t.is_(SYMBOL, "{%"):
            return self.parse_tag_element()
        raise self.error("unexpected token (only HTML, tags, variables and comments are allowed here)", t)

    def parse_variable_element(self) -> NodeVariable:
        start = self.match(SYMBOL, "{{")
        expr = self.parse_expression()
        if self.match(SYMBOL, "}}") is None:
            raise self.error("'}}' expected")
        return NodeVariable(expr, start, escape=self._escape_call(start))

    def _escape_call(self, token: Token) -> FilterCall:
        name = self.config.escape_filter
        fn = self.filters.get(name)
        if fn is None:
            raise ConfigurationError(f"escape filter '{name}' is not registered", template_name=self.name)
        return FilterCall(name, fn, None, token)

    def _tag_arguments(self) -> Tuple[Token, "Parser"]:
        """Reads ``{% name args %}`` and returns the name token and an argument parser."""
        start = self.match(SYMBOL, "{%")
        name_token = self.match_type(IDENTIFIER)
        if name_token is None:
            raise self.error("tag name must be an identifier", start)
        args: List[Token] = []
        while self.remaining() > 0:
            if self.match(SYMBOL, "%}") is not None:
                return name_token, Parser(self.name, args, self.template)
            args.append(self.current())
            self.consume()
        raise self.error("unexpected EOF, '%}' expected", name_token)

    def parse_tag_element(self):
        name_token, arguments = self._tag_arguments()
        name = name_token.value
        if name in self.config.banned_tags:
            raise SandboxViolation(f"usage of tag '{name}' is not allowed (sandboxed)", template_name=self.name, token=name_token)
        tag_parser = self.tags.get(name)
        if tag_parser is None:
            raise self.error(f"tag '{name}' not found (or beginning tag not provided)", name_token)
        return tag_parser(self, name_token, arguments)

    def _peek_end_tag(self, names) -> Optional[Token]:
        if self.peek(SYMBOL, "{%") is None:
            return None
        t = self.peek_n(1, IDENTIFIER)
        if t is not None and t.value in names:
            return t
        return None

    def skip_until_tag(self, *names: str):
        """Discards tokens up to and including the first ``{% name %}`` with name in names."""
        while self.remaining() > 0:
            if self._peek_end_tag(names) is not None:
                end_token, end_args = self._tag_arguments()
                if end_args.count() != 0:
                    raise self.error(f"end tag '{end_token.value}' does not take any argument", end_token)
                return
            self.consume()
        raise self.error(f"unexpected EOF, expected tag {' or '.join(names)}")

    def wrap_until_tag(self, *names: str) -> Tuple[NodeWrapper, "Parser"]:
        """Parses document elements up to the first ``{% name ... %}`` with name in names.

        Returns the wrapped body and a parser over the end tag's arguments.
        """
        wrapper = NodeWrapper()
        while self.remaining() > 0:
            if self._peek_end_tag(names) is not None:
                end_token, end_args = self._tag_arguments()
                wrapper.endtag = end_token.value
                return wrapper, end_args
            wrapper.nodes.append(self.parse_document_element())
        raise self.error(f"unexpected EOF, expected tag {' or '.join(names)}")

    # =================================================================
    # Expressions
    # =================================================================

    def parse_expression(self) -> Evaluator:
        start = self.current()
        expr = self.parse_variable_or_literal()
        filters: List[FilterCall] = []
        while self.match(SYMBOL, "|") is not None:
            filters.append(self.parse_filter())
        if not filters:
            return expr
        return FilteredVariable(expr, filters, start)

    def parse_filter(self) -> FilterCall:
        name_token = self.match_type(IDENTIFIER)
        if name_token is None:
            raise self.error("filter name must be an identifier")
        name = name_token.value
        if name in self.config.banned_filters:
            raise SandboxViolation(
                f"usage of filter '{name}' is not allowed (sandboxed)", template_name=self.name, token=name_token
            )
        fn = self.filters.get(name)
        if fn is None:
            raise self.error(f"filter '{name}' does not exist", name_token)
        param = None
        if self.match(SYMBOL, ":") is not None:
            param = self.parse_variable_or_literal()
        return FilterCall(name, fn, param, name_token)

    def parse_variable_or_literal(self) -> Evaluator:
        t = self.current()
        if t is None:
            raise self.error("unexpected EOF, expected a number, string, keyword or identifier")

        if t.kind == NUMBER:
            self.consume()
            if self.peek(SYMBOL, ".") is not None and self.peek_n(1, NUMBER) is not None:
                frac = self.get(self.idx + 1)
                self.consume_n(2)
                return Literal(float(f"{t.value}.{frac.value}"), t)
            return Literal(int(t.value), t)

        if t.kind == STRING:
            self.consume()
            return Literal(t.value, t)

        if t.kind == KEYWORD:
            self.consume()
            return Literal(t.value == "true", t)

        if t.is_(SYMBOL, "["):
            return self.parse_array(t)

        if t.kind != IDENTIFIER:
            raise self.error("expected either a number, string, keyword or identifier", t)

        self.consume()
        steps = [NameStep(t.value)]
        while True:
            if self.match(SYMBOL, ".") is not None:
                steps.append(self._parse_dotted_step())
            elif self.peek(SYMBOL, "[") is not None:
                self.consume()
                key = self.parse_expression()
                if self.match(SYMBOL, "]") is None:
                    raise self.error("']' expected")
                steps.append(SubscriptStep(key))
            elif self.peek(SYMBOL, "(") is not None:
                last = steps[-1]
                if last.is_call or not isinstance(last, NameStep):
                    raise self.error("only names can be called")
                last.args = self.parse_call_args()
                last.is_call = True
            else:
                break
        return VariableResolver(steps, t)

    def _parse_dotted_step(self):
        t = self.current()
        if t is None:
            raise self.error("unexpected EOF, expected a name or an index after '.'")
        if t.kind == IDENTIFIER:
            self.consume()
            if t.value == "nil":
                return NilStep()
            return NameStep(t.value)
        if t.kind == NUMBER:
            self.consume()
            return IndexStep(int(t.value))
        if t.is_(SYMBOL, "@"):
            self.consume()
            name = self.match_type(IDENTIFIER)
            if name is None:
                raise self.error("attribute name expected after '@'")
            args = self.parse_call_args() if self.peek(SYMBOL, "(") is not None else []
            return AttrStep(name.value, args)
        raise self.error("this token is not allowed within a variable name", t)

    def parse_array(self, start: Token) -> VariableResolver:
        self.match(SYMBOL, "[")
        items = []
        if self.match(SYMBOL, "]") is None:
            while True:
                items.append(ArrayItemStep(self.parse_expression()))
                if self.match(SYMBOL, "]") is not None:
                    break
                if self.match(SYMBOL, ",") is None:
                    raise self.error("',' or ']' expected")
        return VariableResolver(items, start)

    def parse_call_args(self) -> List[Evaluator]:
        self.match(SYMBOL, "(")
        args: List[Evaluator] = []
        if self.match(SYMBOL, ")") is not None:
            return args
        while True:
            if self.peek(IDENTIFIER) is not None and self.peek_n(1, SYMBOL, "=") is not None:
                name = self.current()
                self.consume_n(2)
                args.append(KeywordArgument(name.value, self.parse_expression(), name))
            else:
                args.append(self.parse_expression())
            if self.match(SYMBOL, ")") is not None:
                return args
            if self.match(SYMBOL, ",") is None:
                raise self.error("missing comma or closing bracket")
