"""
Tokenizer for stencil template source.

Template text is split into HTML runs and the contents of ``{{ ... }}`` and
``{% ... %}`` blocks. Comments ``{# ... #}`` are dropped. A dash directly
inside a delimiter (``{{-``, ``-}}``, ``{%-``, ``-%}``) strips whitespace from
the adjacent HTML token.
"""

import re
from typing import List, Optional

from stencil.stencil_errors import ParseError

HTML = "HTML"
KEYWORD = "KEYWORD"
IDENTIFIER = "IDENTIFIER"
NUMBER = "NUMBER"
STRING = "STRING"
SYMBOL = "SYMBOL"

KEYWORDS = frozenset({"true", "false"})

# Longest first.
SYMBOLS = (
    "{{", "}}", "{%", "%}",
    "==", "!=", "<=", ">=", "&&", "||",
    "(", ")", "[", "]", "{", "}", ",", ".", ":", "|", "=", "@",
    "+", "-", "*", "/", "%", "!", "<", ">", "~",
)

SPACE_CHARS = " \t\r\n"

_OPEN_RE = re.compile(r"\{[{%#]")
_WORD_RE = re.compile(r"[A-Za-z0-9_]+")
_ESCAPES = {"\\": "\\", '"': '"', "'": "'", "n": "\n", "t": "\t"}


class Token:
    """A lexical token with its source position."""

    def __init__(self, kind: str, value: str, line: int = 0, col: int = 0, filename: Optional[str] = None):
        self.kind = kind
        self.value = value
        self.line = line
        self.col = col
        self.filename = filename
        # HTML tokens only
        self.trim_left = False
        self.trim_right = False

    def is_(self, kind: str, value: Optional[str] = None) -> bool:
        return self.kind == kind and (value is None or self.value == value)

    def __repr__(self) -> str:
        value = self.value if len(self.value) <= 40 else self.value[:37] + "..."
        return f"<Token {self.kind} {value!r} Line {self.line} Col {self.col}>"

    def __eq__(self, other):
        return isinstance(other, Token) and self.kind == other.kind and self.value == other.value


class Lexer:
    def __init__(self, source: str, name: Optional[str] = None):
        self.source = source
        self.name = name
        self.tokens: List[Token] = []
        self.pos = 0
        self.line = 1
        self.col = 1
        self._trim_next_html = False

    def tokenize(self) -> List[Token]:
        src = self.source
        while self.pos < len(src):
            m = _OPEN_RE.search(src, self.pos)
            if m is None:
                self._emit_html(len(src))
                break
            if m.start() > self.pos:
                self._emit_html(m.start())
            if m.group() == "{#":
                self._skip_comment()
            else:
                self._lex_block(m.group())
        return self.tokens

    # --- position helpers ---

    def _advance(self, n: int):
        for ch in self.source[self.pos:self.pos + n]:
            if ch == "\n":
                self.line += 1
                self.col = 1
            else:
                self.col += 1
        self.pos += n

    def _error(self, message: str, line: Optional[int] = None, col: Optional[int] = None) -> ParseError:
        near = self.source[self.pos:self.pos + 10] or None
        err = ParseError(message, template_name=self.name, line=line or self.line, column=col or self.col)
        err.token = Token(SYMBOL, near, err.line, err.column, self.name) if near else None
        return err

    def _token(self, kind: str, value: str, line: int, col: int) -> Token:
        tok = Token(kind, value, line, col, self.name)
        self.tokens.append(tok)
        return tok

    # --- HTML and comments ---

    def _emit_html(self, end: int):
        tok = self._token(HTML, self.source[self.pos:end], self.line, self.col)
        tok.trim_left = self._trim_next_html
        self._trim_next_html = False
        self._advance(end - self.pos)

    def _skip_comment(self):
        line, col = self.line, self.col
        end = self.source.find("#}", self.pos + 2)
        if end == -1:
            raise self._error("unterminated comment, missing '#}'", line, col)
        self._advance(end + 2 - self.pos)

    # --- blocks ---

    def _lex_block(self, opener: str):
        closer = "}}" if opener == "{{" else "%}"
        line, col = self.line, self.col
        self._trim_next_html = False
        self._token(SYMBOL, opener, line, col)
        self._advance(2)
        if self.source.startswith("-", self.pos):
            if len(self.tokens) > 1 and self.tokens[-2].kind == HTML:
                self.tokens[-2].trim_right = True
            self._advance(1)

        while True:
            self._skip_space()
            if self.pos >= len(self.source):
                raise self._error(f"unexpected end of template, missing '{closer}'", line, col)
            if self.source.startswith("-" + closer, self.pos):
                self._advance(1)
                self._trim_next_html = True
                self._token(SYMBOL, closer, self.line, self.col)
                self._advance(2)
                return
            if self.source.startswith(closer, self.pos):
                self._token(SYMBOL, closer, self.line, self.col)
                self._advance(2)
                return
            self._lex_expression_token()

    def _skip_space(self):
        while self.pos < len(self.source) and self.source[self.pos] in SPACE_CHARS:
            self._advance(1)

    def _lex_expression_token(self):
        src = self.source
        ch = src[self.pos]
        line, col = self.line, self.col

        m = _WORD_RE.match(src, self.pos)
        if m:
            word = m.group()
            if word.isdigit():
                kind = NUMBER
            elif word in KEYWORDS:
                kind = KEYWORD
            else:
                kind = IDENTIFIER
            self._token(kind, word, line, col)
            self._advance(len(word))
            return

        if ch in "\"'":
            self._lex_string(ch)
            return

        for sym in SYMBOLS:
            if src.startswith(sym, self.pos):
                self._token(SYMBOL, sym, line, col)
                self._advance(len(sym))
                return

        raise self._error(f"unknown character {ch!r}")

    def _lex_string(self, quote: str):
        src = self.source
        line, col = self.line, self.col
        self._advance(1)
        out = []
        while True:
            if self.pos >= len(src):
                raise self._error("unterminated string", line, col)
            ch = src[self.pos]
            if ch == quote:
                self._advance(1)
                break
            if ch == "\\":
                nxt = src[self.pos + 1:self.pos + 2]
                if nxt not in _ESCAPES:
                    raise self._error(f"unknown escape sequence \\{nxt}")
                out.append(_ESCAPES[nxt])
                self._advance(2)
                continue
            if ch == "\n":
                raise self._error("newline in string literal", line, col)
            out.append(ch)
            self._advance(1)
        self._token(STRING, "".join(out), line, col)


def tokenize(source: str, name: Optional[str] = None) -> List[Token]:
    return Lexer(source, name).tokenize()
