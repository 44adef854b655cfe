"""
The Value type: a type-erased wrapper around a host value.

A Value carries one arbitrary Python object plus a ``safe`` flag that marks
it as already sanitized (exempt from autoescaping). The flag only ever goes
from False to True: every helper that unwraps a nested Value carries the inner
flag along.
"""

import collections.abc
import math
from typing import Any, Optional, Tuple


class Value:
    __slots__ = ("val", "safe", "name")

    def __init__(self, val: Any = None, safe: bool = False, name: Optional[str] = None):
        if isinstance(val, Value):
            safe = safe or val.safe
            name = name or val.name
            val = val.val
        self.val = val
        self.safe = safe
        # Set only for keyword-tagged call arguments.
        self.name = name

    # --- Type queries ---

    def is_nil(self) -> bool:
        return self.val is None

    def is_string(self) -> bool:
        return isinstance(self.val, str)

    def is_bool(self) -> bool:
        return isinstance(self.val, bool)

    def is_integer(self) -> bool:
        return isinstance(self.val, int) and not isinstance(self.val, bool)

    def is_float(self) -> bool:
        return isinstance(self.val, float)

    def is_number(self) -> bool:
        return self.is_integer() or self.is_float()

    def is_mapping(self) -> bool:
        return isinstance(self.val, collections.abc.Mapping)

    def is_sequence(self) -> bool:
        return isinstance(self.val, collections.abc.Sequence) and not isinstance(self.val, (str, bytes))

    def is_kwarg(self) -> bool:
        return self.name is not None

    def interface(self) -> Any:
        return self.val

    # --- Conversions ---

    def string(self) -> str:
        return to_text(self.val)

    def __str__(self) -> str:
        return self.string()

    def integer(self) -> int:
        v = self.val
        if isinstance(v, bool):
            return int(v)
        if isinstance(v, int):
            return v
        if isinstance(v, float):
            if math.isnan(v) or math.isinf(v):
                return 0
            return int(v)
        if isinstance(v, str):
            try:
                return int(v.strip())
            except ValueError:
                try:
                    return int(float(v.strip()))
                except ValueError:
                    return 0
        return 0

    def float(self) -> float:
        v = self.val
        if isinstance(v, (int, float)):
            return float(v)
        if isinstance(v, str):
            try:
                return float(v.strip())
            except ValueError:
                return 0.0
        return 0.0

    def len(self) -> int:
        v = self.val
        if v is None:
            return 0
        try:
            return len(v)
        except TypeError:
            return 0

    def is_true(self) -> bool:
        """Django-style truthiness: nil, zero, empty text and empty containers are false."""
        v = self.val
        if v is None:
            return False
        if isinstance(v, (bool, int, float)):
            return bool(v)
        if isinstance(v, (str, collections.abc.Sized)):
            return len(v) > 0
        return True

    # --- Comparison ---

    def equal_value_to(self, other: "Value") -> bool:
        a, b = self.val, other.val
        if isinstance(a, bool) != isinstance(b, bool):
            return False
        if self.is_number() and other.is_number():
            return a == b
        if type(a) is not type(b):
            return False
        try:
            return bool(a == b)
        except Exception:
            return a is b

    def contains(self, other: "Value") -> bool:
        v = self.val
        if isinstance(v, str):
            return other.string() in v
        if isinstance(v, collections.abc.Mapping):
            try:
                return other.val in v
            except TypeError:
                return False
        if isinstance(v, collections.abc.Iterable):
            for item in v:
                if Value(item).equal_value_to(other):
                    return True
        return False

    def __repr__(self) -> str:
        flags = " safe" if self.safe else ""
        named = f" {self.name}=" if self.name else " "
        return f"<Value{flags}{named}{self.val!r}>"


def as_value(v: Any) -> Value:
    """Wraps a host value. A Value passed in is returned unchanged."""
    if isinstance(v, Value):
        return v
    return Value(v)


def as_safe_value(v: Any) -> Value:
    return Value(v, safe=True)


def as_named_value(name: str, v: Any) -> Value:
    return Value(v, name=name)


def unwrap(raw: Any) -> Tuple[Any, bool]:
    """Splits a call result into (native value, trust flag)."""
    if isinstance(raw, Value):
        return raw.val, raw.safe
    return raw, False


def format_float(f: float) -> str:
    if math.isfinite(f) and f == int(f):
        return str(int(f))
    return repr(f)


def to_text(v: Any) -> str:
    """Deterministic text for a host value."""
    match v:
        case None:
            return ""
        case Value():
            return v.string()
        case bool():
            return "True" if v else "False"
        case int():
            return str(v)
        case float():
            return format_float(v)
        case str():
            return v
        case bytes() | bytearray():
            return bytes(v).decode("utf-8", errors="replace")
        case collections.abc.Mapping():
            entries = sorted(((to_text(k), to_text(val)) for k, val in v.items()), key=lambda kv: kv[0])
            return "{" + ", ".join(f"{k}: {val}" for k, val in entries) + "}"
        case collections.abc.Set():
            return ", ".join(sorted(to_text(item) for item in v))
        case collections.abc.Sequence():
            return ", ".join(to_text(item) for item in v)
    return str(v)
