"""
The Context store: a named-value scope shared between templates and tags.

A Context maps identifiers (``^[A-Za-z0-9_]+$``) to arbitrary host values.
It is safe for concurrent use: reads take a shared lock and writes take an
exclusive lock. Merging two contexts locks both in a fixed global order so
that two stores merging into each other never deadlock.
"""

import re
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from stencil.stencil_errors import InvalidIdentifier

IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_]+$")

_MISSING = object()


def is_identifier(key: Any) -> bool:
    return isinstance(key, str) and IDENTIFIER_RE.match(key) is not None


class ReadWriteLock:
    """Many readers or one writer. Not reentrant."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self):
        with self._cond:
            # Waiting writers go first so a steady stream of readers cannot starve them.
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class Context:
    """A thread-safe identifier -> value store.

    Template examples for accessing items from a context::

        {{ myconstant }}
        {{ myfunc("test", 42) }}
        {{ user.name }}
        {{ stencil.version }}
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._data: Dict[str, Any] = {}
        self.lock = ReadWriteLock()
        if initial is not None:
            self.update(initial)

    def get(self, key: str, default: Any = None) -> Any:
        with self.lock.read():
            return self._data.get(key, default)

    def lookup(self, key: str) -> Tuple[Any, bool]:
        """Returns ``(value, found)``."""
        with self.lock.read():
            value = self._data.get(key, _MISSING)
        if value is _MISSING:
            return None, False
        return value, True

    def set(self, key: str, value: Any):
        if not is_identifier(key):
            raise InvalidIdentifier(f"context-key {key!r} (value: {value!r}) is not a valid identifier")
        with self.lock.write():
            self._data[key] = value

    def update(self, other: "Context | Mapping[str, Any]") -> "Context":
        """Merges other's entries into this context, overwriting on collision."""
        if other is self:
            return self
        if not isinstance(other, Context):
            items = dict(other)
            with self.lock.write():
                self._data.update(items)
            return self

        # Fixed ordering by identity: both directions of a mutual merge lock the same store first.
        if id(self) < id(other):
            self.lock.acquire_write()
            other.lock.acquire_read()
        else:
            other.lock.acquire_read()
            self.lock.acquire_write()
        try:
            self._data.update(other._data)
        finally:
            self.lock.release_write()
            other.lock.release_read()
        return self

    def length(self) -> int:
        with self.lock.read():
            return len(self._data)

    def items(self) -> List[Tuple[str, Any]]:
        """A snapshot of the entries."""
        with self.lock.read():
            return list(self._data.items())

    def keys(self) -> List[str]:
        with self.lock.read():
            return list(self._data.keys())

    def copy(self) -> "Context":
        return Context().update(self)

    def check_identifiers(self):
        """Raises InvalidIdentifier for the first key that is not a valid identifier."""
        with self.lock.read():
            for key, value in self._data.items():
                if not is_identifier(key):
                    raise InvalidIdentifier(
                        f"context-key {key!r} (value: {value!r}) is not a valid identifier",
                        sender="check_identifiers",
                    )

    def __len__(self) -> int:
        return self.length()

    def __contains__(self, key: object) -> bool:
        with self.lock.read():
            return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __getitem__(self, key: str) -> Any:
        value, found = self.lookup(key)
        if not found:
            raise KeyError(key)
        return value

    def __setitem__(self, key: str, value: Any):
        self.set(key, value)

    def __repr__(self) -> str:
        return f"<Context keys=[{', '.join(sorted(self.keys()))}]>"
