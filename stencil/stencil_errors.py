"""
Error types raised while compiling and rendering stencil templates.

Every error carries the template name, line, column and the token that
triggered it (when one is known), the subsystem that raised it ("sender")
and the original cause.
"""

from typing import Any, Optional


class TemplateError(Exception):
    """Base class for all stencil errors."""

    default_sender = "execution"

    def __init__(
        self,
        message: str,
        *,
        template_name: Optional[str] = None,
        line: int = 0,
        column: int = 0,
        token: Any = None,
        sender: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.template_name = template_name
        self.line = line
        self.column = column
        self.token = token
        self.sender = sender or self.default_sender
        self.cause = cause
        if token is not None and not line:
            self.line = getattr(token, "line", 0) or 0
            self.column = getattr(token, "col", 0) or 0
            self.template_name = template_name or getattr(token, "filename", None)

    def with_location(self, template_name: Optional[str], token: Any = None) -> "TemplateError":
        """Fills in location details that are still missing. Returns self."""
        if token is not None and self.token is None:
            self.token = token
            if not self.line:
                self.line = getattr(token, "line", 0) or 0
                self.column = getattr(token, "col", 0) or 0
        if self.template_name is None:
            self.template_name = getattr(token, "filename", None) or template_name
        return self

    def __str__(self) -> str:
        out = "[Error"
        if self.sender:
            out += f" (where: {self.sender})"
        if self.template_name:
            out += f" in {self.template_name}"
        if self.line > 0:
            out += f" | Line {self.line} Col {self.column}"
            near = getattr(self.token, "value", None)
            if near is not None:
                out += f" near '{near}'"
        return f"{out}] {self.message}"

    def format_with_source(self, source: str, radius: int = 2) -> str:
        """Appends a source excerpt with a caret under the failing column."""
        lines = source.splitlines()
        if not self.line or self.line > len(lines):
            return str(self)
        start = max(1, self.line - radius)
        end = min(len(lines), self.line + radius)
        width = len(str(end))
        out = [str(self)]
        for i in range(start, end + 1):
            prefix = ">" if i == self.line else " "
            out.append(f"{prefix} {str(i).rjust(width)} | {lines[i - 1]}")
            if i == self.line and self.column:
                caret = " " * max(self.column - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)


class ConfigurationError(TemplateError):
    """Invalid engine configuration, or a registry changed after it was frozen."""

    default_sender = "config"


class ParseError(TemplateError):
    """Lexical or syntactic error in template source."""

    default_sender = "parser"


class InvalidIdentifier(TemplateError):
    """A context key does not match ``^[A-Za-z0-9_]+$``."""

    default_sender = "context"


class NoValueFound(TemplateError):
    """A variable path could not be resolved under the strict missing-value policy."""

    default_sender = "resolver"


class NotCallable(TemplateError):
    default_sender = "resolver"


class ArgumentOrderError(TemplateError):
    """A positional argument follows a keyword argument."""

    default_sender = "resolver"


class ArityMismatch(TemplateError):
    default_sender = "resolver"


class TypeMismatch(TemplateError):
    """An argument, index or access does not fit the dynamic type it is applied to."""

    default_sender = "resolver"


class SandboxViolation(TemplateError):
    """A denied filter or tag was used; raised at parse time."""

    default_sender = "parser"


class HostError(TemplateError):
    """An exception raised by a host function, method or filter."""

    default_sender = "host"


class WriteError(TemplateError):
    """The output writer failed."""

    default_sender = "writer"
