"""
Calling host functions and methods from template expressions.

The calling convention is read from the callee's signature:

* a leading parameter annotated ``ExecutionFrame`` (or named ``frame``) is
  supplied by the engine and does not count as an argument;
* a ``**kwargs`` parameter receives every keyword argument (``f(x=1)``) as a
  named Value; callees without one reject keyword arguments, and a keyword
  that names a declared parameter is rejected too;
* positional arguments are checked against the declared parameter count and
  parameter annotations. A parameter annotated ``Value`` receives the wrapper
  itself, unannotated / ``Any`` / ``object`` parameters receive the raw value,
  concrete classes need an exact type match and abstract classes accept any
  instance.

Signature analysis is cached per underlying function.
"""

import abc
import functools
import inspect
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from stencil.stencil_errors import (
    ArgumentOrderError, ArityMismatch, HostError, TemplateError, TypeMismatch,
)
from stencil.stencil_frame import ExecutionFrame
from stencil.stencil_value import Value

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


@dataclass
class CallShape:
    """What the engine needs to know about a callee's parameters."""
    known: bool = True
    takes_frame: bool = False
    positional: List[inspect.Parameter] = field(default_factory=list)
    required: int = 0
    varargs: Optional[inspect.Parameter] = None
    varkw: Optional[inspect.Parameter] = None
    named: Set[str] = field(default_factory=set)
    hints: Dict[str, Any] = field(default_factory=dict)

    def annotation(self, param: inspect.Parameter) -> Any:
        return self.hints.get(param.name, param.annotation)


class _Mismatch(Exception):
    pass


def _type_hints(func) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(func)
    except Exception:
        # Unresolvable forward references: fall back to raw annotations.
        return {}


def _is_frame_param(param: inspect.Parameter, hints: Dict[str, Any]) -> bool:
    ann = hints.get(param.name, param.annotation)
    if ann is ExecutionFrame:
        return True
    if isinstance(ann, str) and ann.rsplit(".", 1)[-1].strip("'\"") == "ExecutionFrame":
        return True
    return param.name == "frame"


def build_shape(func, drop_first: bool = False) -> CallShape:
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        # Some builtins expose no signature; call them without checks.
        return CallShape(known=False)

    params = list(sig.parameters.values())
    hints = _type_hints(func)

    shape = CallShape(hints=hints)
    if drop_first and params:
        shape.named.add(params[0].name)
        params = params[1:]
    if params and params[0].kind in _POSITIONAL and _is_frame_param(params[0], hints):
        shape.takes_frame = True
        shape.named.add(params[0].name)
        params = params[1:]
    for p in params:
        if p.kind is not inspect.Parameter.VAR_KEYWORD:
            shape.named.add(p.name)
        if p.kind in _POSITIONAL:
            shape.positional.append(p)
            if p.default is inspect.Parameter.empty:
                shape.required += 1
        elif p.kind is inspect.Parameter.VAR_POSITIONAL:
            shape.varargs = p
        elif p.kind is inspect.Parameter.VAR_KEYWORD:
            shape.varkw = p
    return shape


@functools.lru_cache(maxsize=1024)
def _cached_shape(func, bound: bool) -> CallShape:
    return build_shape(func, drop_first=bound)


def call_shape(func) -> CallShape:
    underlying = getattr(func, "__func__", None)
    try:
        if underlying is not None:
            return _cached_shape(underlying, True)
        return _cached_shape(func, False)
    except TypeError:
        # Unhashable callable
        return build_shape(func)


def _is_interface(cls: type) -> bool:
    return isinstance(cls, abc.ABCMeta)


def _matches(ann: Any, v: Any) -> bool:
    if ann is Any or ann is object:
        return True
    if ann is None or ann is type(None):
        return v is None
    origin = typing.get_origin(ann)
    if origin is typing.Union or origin is types.UnionType:
        return any(_matches(member, v) for member in typing.get_args(ann))
    if origin is typing.Literal:
        return v in typing.get_args(ann)
    if origin is not None:
        ann = origin
    if not isinstance(ann, type):
        # TypeVars, NewTypes and the like are not checked.
        return True
    if type(v) is ann:
        return True
    if _is_interface(ann):
        try:
            return isinstance(v, ann)
        except TypeError:
            return False
    return False


def _names_value(ann: str) -> bool:
    return ann.rsplit(".", 1)[-1].strip("'\"") == "Value"


def coerce_argument(ann: Any, arg: Value) -> Any:
    """Returns the object to pass for a parameter annotated ann, or raises _Mismatch."""
    if ann is Value or (isinstance(ann, str) and _names_value(ann)):
        return arg
    if ann is inspect.Parameter.empty or isinstance(ann, str):
        return arg.val
    if typing.get_origin(ann) in (typing.Union, types.UnionType) and Value in typing.get_args(ann):
        return arg
    if _matches(ann, arg.val):
        return arg.val
    raise _Mismatch()


def _type_name(ann: Any) -> str:
    return getattr(ann, "__name__", None) or str(ann)


def evaluate_arguments(args: Sequence[Any], frame: ExecutionFrame, path: str):
    """Evaluates call arguments left to right. Returns (positional, keywords)."""
    positional: List[Value] = []
    keywords: Dict[str, Value] = {}
    for arg in args:
        v = arg.evaluate(frame)
        if v.is_kwarg():
            keywords[v.name] = v
        elif keywords:
            raise ArgumentOrderError(
                f"calling a function using a positional argument: {v.string()!r}, "
                f"after a keyword argument (variable {path})"
            )
        else:
            positional.append(v)
    return positional, keywords


def invoke(func, args: Sequence[Any], frame: ExecutionFrame, path: str, attr_name: Optional[str] = None) -> Any:
    """Calls func with template arguments and returns its raw result.

    attr_name is set for generic attribute-getter calls; it is passed as the
    first positional argument.
    """
    positional, keywords = evaluate_arguments(args, frame, path)
    if attr_name is not None:
        positional.insert(0, Value(attr_name))

    shape = call_shape(func)
    if not shape.known:
        return _call(func, [v.val for v in positional], keywords, path)

    if keywords and shape.varkw is None:
        name = next(iter(keywords))
        raise ArityMismatch(
            f"calling '{path}' using a keyword argument: {name}={keywords[name].string()}, "
            "but the function does not accept keyword arguments (add **kwargs to its signature)"
        )
    for name in keywords:
        if name in shape.named:
            raise ArityMismatch(
                f"calling '{path}' using the keyword argument '{name}', which names a declared "
                f"parameter; keyword arguments are only passed through **{shape.varkw.name}"
            )

    count = len(positional)
    declared = len(shape.positional)
    if shape.varargs is not None:
        fits = count >= shape.required
    else:
        fits = shape.required <= count <= declared
    if not fits:
        expected = f"at least {shape.required}" if shape.varargs is not None else str(declared)
        raise ArityMismatch(
            f"function input argument count ({expected}) of '{path}' must be equal to "
            f"the calling argument count ({count - (1 if attr_name is not None else 0)})"
        )

    call_args: List[Any] = [frame] if shape.takes_frame else []
    for idx, v in enumerate(positional):
        param = shape.positional[idx] if idx < declared else shape.varargs
        ann = shape.annotation(param)
        try:
            call_args.append(coerce_argument(ann, v))
        except _Mismatch:
            which = "variadic input argument" if idx >= declared else f"input argument {idx}"
            raise TypeMismatch(
                f"function {which} of '{path}' must be of type {_type_name(ann)} "
                f"or Value (not {type(v.val).__name__})"
            ) from None

    return _call(func, call_args, keywords, path)


def _call(func, call_args: List[Any], keywords: Dict[str, Value], path: str) -> Any:
    try:
        return func(*call_args, **keywords)
    except TemplateError:
        raise
    except Exception as e:
        raise HostError(f"calling '{path}' failed: {type(e).__name__}: {e}", cause=e) from e
