"""Engine configuration.

EngineConfig is a frozen dataclass, built once at startup and handed to a
TemplateSet. It can be loaded from a YAML document::

    autoescape: true
    allow_missing_val: false
    banned_filters: [urlencode]
"""

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from stencil.stencil_errors import ConfigurationError

VERSION = "0.4.0"

_SET_FIELDS = ("banned_filters", "banned_tags")
_BOOL_FIELDS = ("autoescape", "allow_missing_val", "debug")
_STR_FIELDS = ("safe_filter", "escape_filter")


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Process-wide rendering defaults. Immutable after creation."""

    # Escaping
    autoescape: bool = True
    safe_filter: str = "safe"
    escape_filter: str = "escape"

    # Resolution
    allow_missing_val: bool = True  # False: unresolvable paths raise NoValueFound

    # Sandbox (enforced at parse time)
    banned_filters: frozenset[str] = frozenset()
    banned_tags: frozenset[str] = frozenset()

    debug: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "EngineConfig":
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"engine config must be a mapping, not {type(data).__name__}")
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"unknown engine config keys: {', '.join(unknown)}")

        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key in _BOOL_FIELDS:
                if not isinstance(value, bool):
                    raise ConfigurationError(f"'{key}' must be a boolean, not {type(value).__name__}")
                kwargs[key] = value
            elif key in _STR_FIELDS:
                if not isinstance(value, str) or not value:
                    raise ConfigurationError(f"'{key}' must be a non-empty string")
                kwargs[key] = value
            elif key in _SET_FIELDS:
                if value is None:
                    value = []
                if isinstance(value, str) or not all(isinstance(v, str) for v in value):
                    raise ConfigurationError(f"'{key}' must be a list of names")
                kwargs[key] = frozenset(value)
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, source: str | Path) -> "EngineConfig":
        """Loads a config from a YAML file path or a YAML text."""
        if isinstance(source, Path) or (isinstance(source, str) and "\n" not in source and source.endswith((".yaml", ".yml"))):
            try:
                text = Path(source).read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(f"cannot read engine config {source}: {e}", cause=e) from e
        else:
            text = source
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML in engine config: {e}", cause=e) from e
        return cls.from_mapping(data)

    def with_overrides(self, **changes: Any) -> "EngineConfig":
        for key in _SET_FIELDS:
            if key in changes:
                changes[key] = frozenset(changes[key])
        return dataclasses.replace(self, **changes)
