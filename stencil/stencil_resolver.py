"""
The variable resolver: walks an access path against an execution frame.

A path such as ``user.addresses[0].city`` or ``site.@lookup("x")`` is a list
of PathSteps. The first step is looked up in the frame (Private, then
Public); every following step is applied to the running value:

* identifiers first try a host method of that name, then a mapping key or an
  object attribute, then the object's generic ``get_attr`` method;
* integer indexes and subscripts index sequences, mappings and records;
* routines are invoked (see stencil_calls) when called explicitly or when a
  step lands on one.

Absence is soft: out-of-range indexes, missing subscript keys and ``None``
mid-path yield the nil Value; a missing name yields nil under the permissive
missing-value policy and NoValueFound under the strict one. Applying a step
to a type that cannot support it is a hard error naming the type and path.
"""

import collections.abc
import inspect
import functools
import weakref
from typing import Any, List, Optional, Sequence

from stencil.stencil_calls import invoke
from stencil.stencil_context import Context
from stencil.stencil_datatypes import (
    ArrayItemStep, AttrStep, Evaluator, IndexStep, NameStep, NilStep, PathStep, SubscriptStep,
)
from stencil.stencil_errors import NoValueFound, NotCallable, HostError, TemplateError, TypeMismatch
from stencil.stencil_frame import ExecutionFrame
from stencil.stencil_value import Value

# Host objects may define this method to serve names they have no attribute for.
GET_ATTR_METHOD = "get_attr"

_MISSING = object()

# Values whose own methods are never exposed to templates.
_BUILTIN_TYPES = (
    str, bytes, bytearray, int, float, complex, bool,
    list, tuple, dict, set, frozenset, range, type(None),
)


class _SoftNil(Exception):
    """Ends resolution with the nil Value."""


def is_invocable(v: Any) -> bool:
    # Instances with __call__ and classes are records, never invoked.
    return inspect.isroutine(v) or isinstance(v, functools.partial)


def is_sequence(v: Any) -> bool:
    return isinstance(v, (str, bytes, bytearray)) or (
        isinstance(v, collections.abc.Sequence) and not isinstance(v, collections.abc.Mapping)
    )


def is_mapping(v: Any) -> bool:
    return isinstance(v, (collections.abc.Mapping, Context))


def is_record(v: Any) -> bool:
    return not isinstance(v, _BUILTIN_TYPES) and not is_sequence(v) and not is_mapping(v) and not is_invocable(v)


def find_method(current: Any, name: str) -> Optional[Any]:
    """Returns the bound host method called name, or None."""
    if current is _MISSING or current is None or name.startswith("_"):
        return None
    if isinstance(current, (_BUILTIN_TYPES, type, Context, Value)):
        return None
    attr = inspect.getattr_static(type(current), name, None)
    if attr is None:
        return None
    if isinstance(attr, (staticmethod, classmethod)) or inspect.isroutine(attr):
        return getattr(current, name)
    return None


def _mapping_get(mapping: Any, key: Any) -> Any:
    try:
        return mapping.get(key, _MISSING)
    except TypeError:
        # Unhashable key
        return _MISSING


def _read_attribute(obj: Any, name: str, path: str) -> Any:
    if name.startswith("_"):
        return _MISSING
    try:
        return getattr(obj, name)
    except AttributeError:
        return _MISSING
    except Exception as e:
        raise HostError(f"reading attribute '{name}' of {type(obj).__name__} failed (variable {path}): {e}", cause=e) from e


class VariableResolver(Evaluator):
    """An ordered chain of path steps describing one expression."""

    def __init__(self, steps: Optional[Sequence[PathStep]] = None, token: Any = None):
        self.steps: List[PathStep] = list(steps or [])
        self.token = token

    def path_string(self) -> str:
        return ".".join(step.describe() for step in self.steps)

    def __str__(self) -> str:
        return self.path_string()

    def __repr__(self) -> str:
        return f"<VariableResolver {self.steps!r}>"

    def evaluate(self, frame: ExecutionFrame) -> Value:
        try:
            return self.resolve(frame)
        except TemplateError as e:
            raise frame.error(e, self.token)

    def resolve(self, frame: ExecutionFrame) -> Value:
        # An empty step list is the literal ``[]``.
        if not self.steps or isinstance(self.steps[0], ArrayItemStep):
            items = [step.expr.evaluate(frame) for step in self.steps]
            return Value(items, safe=True)
        try:
            return self._walk(frame)
        except _SoftNil:
            return Value(None)

    def _missing(self, frame: ExecutionFrame) -> Value:
        if frame.allow_missing_val:
            raise _SoftNil()
        raise NoValueFound(f"No value found for {self.path_string()}")

    def _walk(self, frame: ExecutionFrame) -> Value:
        path = self.path_string()
        current: Any = _MISSING
        safe = False

        for idx, step in enumerate(self.steps):
            attr_name = None
            if idx == 0:
                value, found = frame.lookup(step.name)
                current = value if found else _MISSING
            else:
                method = None
                if isinstance(step, (NameStep, AttrStep)):
                    lookup_name = GET_ATTR_METHOD if isinstance(step, AttrStep) else step.name
                    method = find_method(current, lookup_name)
                    if method is not None:
                        current = method
                        if isinstance(step, AttrStep):
                            attr_name = step.name
                    elif isinstance(step, AttrStep):
                        raise NotCallable(
                            f"can't access method {GET_ATTR_METHOD} on type {type(current).__name__} (variable {path})"
                        )
                if method is None:
                    current = _deref(current)
                    current, attr_name = self._apply(step, current, frame, path)

            if current is _MISSING:
                return self._missing(frame)
            if current is None:
                raise _SoftNil()

            if isinstance(current, Value):
                current, safe = current.val, current.safe
                if current is None:
                    raise _SoftNil()

            if step.is_call or is_invocable(current):
                if not is_invocable(current):
                    getter = find_method(current, GET_ATTR_METHOD)
                    if getter is None:
                        raise NotCallable(f"'{path}' is not a function (it is {type(current).__name__})")
                    current = getter
                    attr_name = getattr(step, "name", "")
                result = invoke(current, step.args, frame, path, attr_name=attr_name)
                if isinstance(result, Value):
                    result, safe = result.val, result.safe
                current = result
                if current is None:
                    raise _SoftNil()

        return Value(current, safe=safe)

    def _apply(self, step: PathStep, current: Any, frame: ExecutionFrame, path: str):
        """Applies one non-method step. Returns (new current, attribute name for get_attr)."""
        kind = type(current).__name__
        match step:
            case NilStep():
                raise _SoftNil()

            case IndexStep():
                if not is_sequence(current):
                    raise TypeMismatch(f"can't access an index on type {kind} (variable {path})")
                if 0 <= step.index < len(current):
                    return current[step.index], None
                raise _SoftNil()

            case NameStep():
                if is_mapping(current):
                    found = _mapping_get(current, step.name)
                elif is_record(current):
                    found = _read_attribute(current, step.name, path)
                else:
                    raise TypeMismatch(f"can't access a field by name on type {kind} (variable {path})")
                if found is not _MISSING:
                    return found, None
                getter = find_method(current, GET_ATTR_METHOD)
                if getter is not None:
                    return getter, step.name
                return _MISSING, None

            case SubscriptStep():
                if not (is_sequence(current) or is_mapping(current) or is_record(current)):
                    raise TypeMismatch(f"can't access an index on type {kind} (variable {path})")
                key = step.expr.evaluate(frame)
                if is_sequence(current):
                    i = key.integer()
                    if 0 <= i < len(current):
                        return current[i], None
                    raise _SoftNil()
                if is_mapping(current):
                    if key.is_nil():
                        raise _SoftNil()
                    found = _mapping_get(current, key.val)
                else:
                    found = _read_attribute(current, key.string(), path)
                if found is _MISSING:
                    raise _SoftNil()
                return found, None

        raise TypeMismatch(f"unsupported path step {step!r} (variable {path})")


def _deref(current: Any) -> Any:
    """Follows one level of reference indirection; a dead reference ends the path with nil."""
    if isinstance(current, weakref.ReferenceType):
        current = current()
        if current is None:
            raise _SoftNil()
    return current
