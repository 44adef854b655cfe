"""
Template sets and compiled templates.

A TemplateSet bundles an EngineConfig with its filter and tag registries.
The registries and the sandbox deny-lists can be changed until the set
compiles its first template; after that the set is frozen and may be used
from any number of threads.

    tpl = stencil.from_string("Hello {{ name|title }}!")
    tpl.execute({"name": "world"})    # "Hello World!"
"""

import io
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

import structlog

from stencil.stencil_config import EngineConfig
from stencil.stencil_context import Context
from stencil.stencil_errors import ConfigurationError, TemplateError
from stencil.stencil_filters import FilterRegistry, default_filters
from stencil.stencil_frame import ExecutionFrame
from stencil.stencil_lexer import Lexer
from stencil.stencil_parser import Parser
from stencil.stencil_tags import TagRegistry, default_tags

logger = structlog.get_logger()

ContextLike = Union[Context, Mapping, None]


class TemplateSet:
    """Configuration, filters and tags shared by a group of templates."""

    def __init__(
        self,
        name: str = "default",
        config: Optional[EngineConfig] = None,
        filters: Optional[FilterRegistry] = None,
        tags: Optional[TagRegistry] = None,
    ):
        self.name = name
        self.config = config if config is not None else EngineConfig()
        self.filters = filters if filters is not None else default_filters()
        self.tags = tags if tags is not None else default_tags()
        self.logger = logger.bind(template_set=name)
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_not_frozen(self, what: str):
        if self._frozen:
            raise ConfigurationError(f"cannot {what}: template set '{self.name}' has already compiled a template")

    def ban_filter(self, name: str):
        """Denies filter name in templates compiled by this set."""
        with self._lock:
            self._check_not_frozen(f"ban filter '{name}'")
            self.config = self.config.with_overrides(banned_filters=self.config.banned_filters | {name})
        self.logger.debug("stencil.set.filter_banned", filter=name)

    def ban_tag(self, name: str):
        """Denies tag name in templates compiled by this set."""
        with self._lock:
            self._check_not_frozen(f"ban tag '{name}'")
            self.config = self.config.with_overrides(banned_tags=self.config.banned_tags | {name})
        self.logger.debug("stencil.set.tag_banned", tag=name)

    def freeze(self):
        with self._lock:
            if self._frozen:
                return
            for key in ("safe_filter", "escape_filter"):
                filter_name = getattr(self.config, key)
                if filter_name not in self.filters:
                    raise ConfigurationError(f"{key} '{filter_name}' is not a registered filter")
            self.filters.freeze()
            self.tags.freeze()
            self._frozen = True
        self.logger.debug("stencil.set.frozen", filters=len(self.filters), tags=len(self.tags.names()))

    def from_string(self, source: str, name: Optional[str] = None) -> "Template":
        self.freeze()
        return Template(self, source, name or "<string>")

    def from_file(self, path: Union[str, Path]) -> "Template":
        path = Path(path)
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as e:
            raise TemplateError(f"cannot read template {path}: {e}", template_name=str(path), sender="fromfile", cause=e) from e
        return self.from_string(source, name=str(path))

    def __repr__(self) -> str:
        return f"<TemplateSet {self.name!r} frozen={self._frozen}>"


class Template:
    """A compiled template. Immutable; may be rendered concurrently."""

    def __init__(self, template_set: TemplateSet, source: str, name: str):
        self.set = template_set
        self.source = source
        self.name = name
        self.tokens = Lexer(source, name).tokenize()
        self.root = Parser(name, self.tokens, self).parse_document()
        template_set.logger.debug("stencil.template.compiled", template=name, tokens=len(self.tokens))

    def _public_context(self, context: ContextLike) -> Context:
        if context is None:
            return Context()
        if isinstance(context, Context):
            public = context
        elif isinstance(context, Mapping):
            public = Context().update(context)
        else:
            raise TemplateError(
                f"context must be a Context or a mapping, not {type(context).__name__}", template_name=self.name
            )
        try:
            public.check_identifiers()
        except TemplateError as e:
            raise e.with_location(self.name)
        return public

    def new_frame(self, context: ContextLike = None) -> ExecutionFrame:
        return ExecutionFrame.top_level(self, self._public_context(context))

    def execute_writer(self, context: ContextLike, writer: Any):
        """Renders into writer (anything with ``write(str)``).

        On failure, output written before the error stays written.
        """
        frame = self.new_frame(context)
        self.set.logger.debug("stencil.render.started", template=self.name)
        try:
            self.root.execute(frame, writer)
        except TemplateError as e:
            self.set.logger.error("stencil.render.failed", template=self.name, error=str(e))
            raise

    def execute(self, context: ContextLike = None) -> str:
        buffer = io.StringIO()
        self.execute_writer(context, buffer)
        return buffer.getvalue()

    def __repr__(self) -> str:
        return f"<Template {self.name!r}>"


default_set = TemplateSet("default")


def from_string(source: str, name: Optional[str] = None) -> Template:
    """Compiles source with the default template set."""
    return default_set.from_string(source, name)


def from_file(path: Union[str, Path]) -> Template:
    return default_set.from_file(path)
