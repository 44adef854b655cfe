"""
Defines the expression data types produced by the parser.

This module provides the access-path step classes that make up a variable
path (``user.addresses[0].city``) and the literal expression nodes. All
expression nodes share the Evaluator interface used by the resolver, the
filter chain and the document nodes.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from stencil.stencil_errors import TemplateError, WriteError
from stencil.stencil_value import Value


# =================================================================
# Evaluator interface
# =================================================================

class Evaluator(ABC):
    """Anything that evaluates to a Value against an execution frame."""

    token: Any = None

    @abstractmethod
    def evaluate(self, frame) -> Value:
        ...

    def filter_applied(self, name: str) -> bool:
        return False


def write_text(frame, writer, text: str, token: Any = None):
    """Writes to the output sink, turning sink failures into WriteError."""
    try:
        writer.write(text)
    except TemplateError:
        raise
    except Exception as e:
        raise frame.error(WriteError(f"writing output failed: {e}", cause=e), token) from e


# =================================================================
# Literals
# =================================================================

class Literal(Evaluator):
    """A string, integer, float or boolean literal."""

    def __init__(self, value: Any, token: Any = None):
        self.value = value
        self.token = token

    def evaluate(self, frame) -> Value:
        return Value(self.value)

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"

    def __eq__(self, other):
        return isinstance(other, Literal) and type(self.value) is type(other.value) and self.value == other.value


class KeywordArgument(Evaluator):
    """``name=expr`` inside a call argument list."""

    def __init__(self, name: str, expr: Evaluator, token: Any = None):
        self.name = name
        self.expr = expr
        self.token = token

    def evaluate(self, frame) -> Value:
        v = self.expr.evaluate(frame)
        return Value(v.val, safe=v.safe, name=self.name)

    def __repr__(self) -> str:
        return f"KeywordArgument({self.name!r}, {self.expr!r})"


# =================================================================
# Path steps
# =================================================================

class PathStep(ABC):
    """Abstract base class for all steps of a variable path."""

    is_call: bool = False

    def __init__(self):
        self.args: List[Evaluator] = []

    def describe(self) -> str:
        return repr(self)


class IndexStep(PathStep):
    """A literal integer index, e.g. the ``0`` in ``items.0``."""

    def __init__(self, index: int):
        super().__init__()
        self.index = index

    def describe(self) -> str:
        return str(self.index)

    def __repr__(self) -> str:
        return f"Index<{self.index}>"

    def __eq__(self, other):
        return isinstance(other, IndexStep) and self.index == other.index


class NameStep(PathStep):
    """An identifier step: field, key or method name; optionally called."""

    def __init__(self, name: str, is_call: bool = False, args: Optional[Sequence[Evaluator]] = None):
        super().__init__()
        self.name = name
        self.is_call = is_call
        self.args = list(args or [])

    def describe(self) -> str:
        return self.name

    def __repr__(self) -> str:
        call = f"({len(self.args)} args)" if self.is_call else ""
        return f"Name<{self.name!r}>{call}"

    def __eq__(self, other):
        return isinstance(other, NameStep) and self.name == other.name and self.is_call == other.is_call and len(self.args) == len(other.args)


class AttrStep(PathStep):
    """``obj.@name(args)``: a call of the generic attribute getter."""

    is_call = True

    def __init__(self, name: str, args: Optional[Sequence[Evaluator]] = None):
        super().__init__()
        self.name = name
        self.args = list(args or [])

    def describe(self) -> str:
        return f"@{self.name}{{attr args}}"

    def __repr__(self) -> str:
        return f"Attr<{self.name!r}>({len(self.args)} args)"

    def __eq__(self, other):
        return isinstance(other, AttrStep) and self.name == other.name and len(self.args) == len(other.args)


class SubscriptStep(PathStep):
    """A dynamic subscript, e.g. ``[key]`` or ``[i]``."""

    def __init__(self, expr: Evaluator):
        super().__init__()
        self.expr = expr

    def describe(self) -> str:
        return "[subscript]"

    def __repr__(self) -> str:
        return f"Subscript({self.expr!r})"


class ArrayItemStep(PathStep):
    """One element of an array literal ``[a, b, c]``."""

    def __init__(self, expr: Evaluator):
        super().__init__()
        self.expr = expr

    def describe(self) -> str:
        return "[array]"

    def __repr__(self) -> str:
        return f"ArrayItem({self.expr!r})"


class NilStep(PathStep):
    """``x.nil``: ends the path with the nil value."""

    def describe(self) -> str:
        return "nil"

    def __repr__(self) -> str:
        return "Nil<>"

    def __eq__(self, other):
        return isinstance(other, NilStep)
