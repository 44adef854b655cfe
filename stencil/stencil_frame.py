"""
Execution frames: the per-render scope handed to every node, tag and filter.

A frame owns a Private context (scratch space for tags, e.g. loop
variables), references the caller's Public context (read-only) and a Shared
context that every frame of one render can reach. Tags that open a nested
scope create a child frame; the child gets a snapshot of the parent's Private
entries, so later writes on either side stay invisible to the other.
"""

from typing import Any, Optional

import structlog

from stencil.stencil_config import VERSION, EngineConfig
from stencil.stencil_context import Context
from stencil.stencil_errors import TemplateError

logger = structlog.get_logger()

# Reserved keys: engine metadata in Private, the nil sentinel in Public.
META_KEY = "stencil"
NIL_KEY = "nil"


class ExecutionFrame:
    """The rendering state of one nested scope.

    PLEASE DO NOT MODIFY THE PUBLIC CONTEXT from tags or filters; use
    ``private`` for data you provide to the template and ``shared`` for data
    exchanged between tags.
    """

    def __init__(
        self,
        template: Any,
        public: Context,
        private: Context,
        shared: Optional[Context],
        autoescape: bool,
        allow_missing_val: bool,
    ):
        self.template = template
        self.public = public
        self.private = private
        self.shared = shared
        self.autoescape = autoescape
        self.allow_missing_val = allow_missing_val

    @classmethod
    def top_level(cls, template: Any, public: Context) -> "ExecutionFrame":
        config = _config_of(template)
        private = Context()
        private.set(META_KEY, {"version": VERSION})

        with public.lock.write():
            public._data[NIL_KEY] = None

        return cls(
            template=template,
            public=public,
            private=private,
            shared=Context(),
            autoescape=config.autoescape,
            allow_missing_val=config.allow_missing_val,
        )

    @classmethod
    def child(cls, parent: "ExecutionFrame") -> "ExecutionFrame":
        return cls(
            template=parent.template,
            public=parent.public,
            private=parent.private.copy(),
            shared=parent.shared,
            autoescape=parent.autoescape,
            allow_missing_val=parent.allow_missing_val,
        )

    def new_child(self) -> "ExecutionFrame":
        return ExecutionFrame.child(self)

    @property
    def template_name(self) -> Optional[str]:
        return getattr(self.template, "name", None)

    @property
    def config(self) -> EngineConfig:
        return _config_of(self.template)

    def lookup(self, name: str):
        """Private first, then Public. Returns ``(value, found)``."""
        value, found = self.private.lookup(name)
        if found:
            return value, True
        return self.public.lookup(name)

    def error(self, exc: BaseException, token: Any = None) -> TemplateError:
        """Wraps exc as a TemplateError located at token (or the template's default location)."""
        if isinstance(exc, TemplateError):
            return exc.with_location(self.template_name, token)
        return TemplateError(str(exc), template_name=self.template_name, token=token, cause=exc).with_location(
            self.template_name, token
        )

    def log(self, event: str, **fields):
        log = getattr(getattr(self.template, "set", None), "logger", None) or logger
        log.debug(event, template=self.template_name, **fields)

    def __repr__(self) -> str:
        return (
            f"<ExecutionFrame template={self.template_name!r} autoescape={self.autoescape} "
            f"private={self.private!r} public={self.public!r}>"
        )


def _config_of(template: Any) -> EngineConfig:
    config = getattr(getattr(template, "set", None), "config", None)
    return config if isinstance(config, EngineConfig) else EngineConfig()
