"""Filters: named value transformations applied with ``{{ expr|name:arg }}``.

A filter is a plain function ``fn(value: Value, param: Value | None) -> Value``.
Filters are kept in a FilterRegistry per template set; the registry is frozen
when the set compiles its first template, after which it is read-only and
safe to share between threads.
"""

import html
import re
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import structlog

from stencil.stencil_datatypes import Evaluator
from stencil.stencil_errors import ConfigurationError, HostError, TemplateError
from stencil.stencil_value import Value, as_value, to_text

logger = structlog.get_logger()

FilterFunction = Callable[[Value, Optional[Value]], Any]


class FilterRegistry:
    """Name to filter-function map."""

    def __init__(self, filters: Optional[Dict[str, FilterFunction]] = None):
        self._filters: Dict[str, FilterFunction] = dict(filters or {})
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, name: str, fn: FilterFunction, replace: bool = False):
        if self._frozen:
            raise ConfigurationError(f"cannot register filter '{name}': the filter registry is frozen")
        if not callable(fn):
            raise ConfigurationError(f"filter '{name}' is not callable")
        if name in self._filters:
            if not replace:
                raise ConfigurationError(f"filter with name '{name}' is already registered")
            logger.warning("stencil.filters.replaced", filter=name)
        self._filters[name] = fn
        logger.debug("stencil.filters.registered", filter=name)

    def freeze(self):
        self._frozen = True

    def get(self, name: str) -> Optional[FilterFunction]:
        return self._filters.get(name)

    def names(self) -> List[str]:
        return sorted(self._filters)

    def copy(self) -> "FilterRegistry":
        return FilterRegistry(dict(self._filters))

    def __contains__(self, name: str) -> bool:
        return name in self._filters

    def __len__(self) -> int:
        return len(self._filters)


class FilterCall:
    """One ``|name:param`` element of a filter chain."""

    def __init__(self, name: str, fn: FilterFunction, param_expr: Optional[Evaluator] = None, token: Any = None):
        self.name = name
        self.fn = fn
        self.param_expr = param_expr
        self.token = token

    def execute(self, value: Value, frame) -> Value:
        param = self.param_expr.evaluate(frame) if self.param_expr is not None else None
        try:
            result = self.fn(value, param)
        except TemplateError:
            raise
        except Exception as e:
            raise HostError(
                f"filter '{self.name}' failed: {type(e).__name__}: {e}", sender=f"filter:{self.name}", cause=e
            ) from e
        return as_value(result)

    def __repr__(self) -> str:
        return f"FilterCall({self.name!r}, {self.param_expr!r})"


class FilteredVariable(Evaluator):
    """An expression followed by a chain of filters, applied left to right."""

    def __init__(self, expr: Evaluator, filters: Optional[List[FilterCall]] = None, token: Any = None):
        self.expr = expr
        self.filters: List[FilterCall] = list(filters or [])
        self.token = token if token is not None else getattr(expr, "token", None)

    def evaluate(self, frame) -> Value:
        value = self.expr.evaluate(frame)
        for call in self.filters:
            try:
                value = call.execute(value, frame)
            except TemplateError as e:
                raise frame.error(e, call.token or self.token)
        return value

    def filter_applied(self, name: str) -> bool:
        return any(call.name == name for call in self.filters)

    def __repr__(self) -> str:
        return f"FilteredVariable({self.expr!r}, {self.filters!r})"


# =================================================================
# Built-in filters
# =================================================================

def filter_escape(value: Value, param: Optional[Value]) -> Value:
    """HTML-escape the text of value and mark the result safe.

    Already trusted text is returned unchanged.

    Example:
        {{ "<b>" | escape }}  → "&lt;b&gt;"
    """
    if value.safe:
        return value
    return Value(html.escape(value.string()), safe=True)


def filter_safe(value: Value, param: Optional[Value]) -> Value:
    """Mark value as trusted so autoescaping leaves it alone."""
    return Value(value.val, safe=True)


def filter_wordwrap(value: Value, param: Optional[Value]) -> Value:
    """Break the text into lines of ``param`` words each.

    Example:
        {{ "one two three four five six" | wordwrap:4 }}
        → "one two three four\\nfive six"
    """
    words = value.string().split()
    width = param.integer() if param is not None else 0
    if width <= 0:
        return value
    lines = [" ".join(words[i:i + width]) for i in range(0, len(words), width)]
    return Value("\n".join(lines))


def filter_upper(value: Value, param: Optional[Value]) -> Value:
    return Value(value.string().upper())


def filter_lower(value: Value, param: Optional[Value]) -> Value:
    return Value(value.string().lower())


def filter_title(value: Value, param: Optional[Value]) -> Value:
    return Value(value.string().title())


def filter_capfirst(value: Value, param: Optional[Value]) -> Value:
    text = value.string()
    return Value(text[:1].upper() + text[1:])


def filter_length(value: Value, param: Optional[Value]) -> Value:
    return Value(value.len())


def filter_default(value: Value, param: Optional[Value]) -> Value:
    """Use param when value is false-ish (nil, empty, zero)."""
    if not value.is_true():
        return param if param is not None else Value(None)
    return value


def filter_default_if_none(value: Value, param: Optional[Value]) -> Value:
    if value.is_nil():
        return param if param is not None else Value(None)
    return value


def filter_join(value: Value, param: Optional[Value]) -> Value:
    """Join the items of a sequence with param.

    Example:
        {{ tags | join:", " }}  → "a, b, c"
    """
    sep = param.string() if param is not None else ""
    if value.is_string():
        return Value(sep.join(value.val))
    if not value.is_sequence():
        return value
    return Value(sep.join(to_text(item) for item in value.val))


def filter_first(value: Value, param: Optional[Value]) -> Value:
    if value.len() == 0 or not (value.is_sequence() or value.is_string()):
        return Value("")
    return Value(value.val[0])


def filter_last(value: Value, param: Optional[Value]) -> Value:
    if value.len() == 0 or not (value.is_sequence() or value.is_string()):
        return Value("")
    return Value(value.val[-1])


def filter_cut(value: Value, param: Optional[Value]) -> Value:
    if param is None:
        return value
    return Value(value.string().replace(param.string(), ""))


def filter_add(value: Value, param: Optional[Value]) -> Value:
    """Numeric addition when both sides are numbers, text concatenation otherwise.

    Example:
        {{ 40 | add:2 }}  → "42"
        {{ "foo" | add:"bar" }}  → "foobar"
    """
    if param is None:
        return value
    if value.is_number() and param.is_number():
        if value.is_integer() and param.is_integer():
            return Value(value.integer() + param.integer())
        return Value(value.float() + param.float())
    return Value(value.string() + param.string())


def filter_truncatechars(value: Value, param: Optional[Value]) -> Value:
    text = value.string()
    length = param.integer() if param is not None else 0
    if len(text) > length:
        text = text[:max(length - 3, 0)] + "..."
    return Value(text)


def filter_linebreaksbr(value: Value, param: Optional[Value]) -> Value:
    """Replace newlines with ``<br />``; the rest of the text is escaped unless already safe."""
    text = value.string() if value.safe else html.escape(value.string())
    return Value(text.replace("\r\n", "\n").replace("\n", "<br />"), safe=True)


def filter_urlencode(value: Value, param: Optional[Value]) -> Value:
    return Value(quote(value.string(), safe="/"))


def filter_yesno(value: Value, param: Optional[Value]) -> Value:
    """Map true / false / nil to "yes" / "no" / "maybe", or to a custom "y,n[,m]" list.

    Example:
        {{ answer | yesno:"yeah,nope,dunno" }}
    """
    choices = ["yes", "no", "maybe"]
    if param is not None:
        custom = param.string().split(",")
        if len(custom) not in (2, 3):
            raise TemplateError(f"yesno: expected 2 or 3 comma separated options, got {len(custom)}", sender="filter:yesno")
        choices = custom if len(custom) == 3 else custom + [custom[1]]
    if value.is_nil():
        return Value(choices[2])
    return Value(choices[0] if value.is_true() else choices[1])


def filter_pluralize(value: Value, param: Optional[Value]) -> Value:
    """Plural suffix for a count: "", "s", or a custom "singular,plural" pair.

    Example:
        {{ n }} item{{ n | pluralize }}
        {{ n }} cherr{{ n | pluralize:"y,ies" }}
    """
    if value.is_number() or value.is_string():
        count = value.integer()
    else:
        count = value.len()
    suffixes = param.string().split(",") if param is not None else ["s"]
    if len(suffixes) == 1:
        singular, plural = "", suffixes[0]
    elif len(suffixes) == 2:
        singular, plural = suffixes
    else:
        raise TemplateError("pluralize: at most one comma is allowed in the suffix", sender="filter:pluralize")
    return Value(singular if count == 1 else plural)


_TAG_RE = re.compile(r"<[^>]*?>")


def filter_striptags(value: Value, param: Optional[Value]) -> Value:
    return Value(_TAG_RE.sub("", value.string()).strip())


BUILTIN_FILTERS: Dict[str, FilterFunction] = {
    "escape": filter_escape,
    "e": filter_escape,
    "safe": filter_safe,
    "wordwrap": filter_wordwrap,
    "upper": filter_upper,
    "lower": filter_lower,
    "title": filter_title,
    "capfirst": filter_capfirst,
    "length": filter_length,
    "default": filter_default,
    "default_if_none": filter_default_if_none,
    "join": filter_join,
    "first": filter_first,
    "last": filter_last,
    "cut": filter_cut,
    "add": filter_add,
    "truncatechars": filter_truncatechars,
    "linebreaksbr": filter_linebreaksbr,
    "urlencode": filter_urlencode,
    "yesno": filter_yesno,
    "pluralize": filter_pluralize,
    "striptags": filter_striptags,
}


def default_filters() -> FilterRegistry:
    return FilterRegistry(BUILTIN_FILTERS)
