"""Utility exceptions and helpers for the aspect transformer.

This module defines a small hierarchy of rich exceptions used throughout the
directive/signature/synthesis pipeline, plus simple helpers.

Exceptions:
    AspectError: Base class carrying `suggestions` and `context` metadata.
    DirectiveError: Raised when the directive attached to a function is invalid.
    MissingHooks: Raised when a directive names neither hook.
    DuplicateKey: Raised when a directive repeats a key.
    UnrecognizedOption: Raised when a directive carries an unknown key.
    InvalidHookReference: Raised when a hook is not a dotted path or callable.
    DeclarationError: Raised when a declaration cannot be transformed.
    UnsupportedDeclarationShape: Raised for declarations without a body.
    GenericParameterConflict: Raised when no internal name is conflict-free.
    ShadowedHookReference: Raised when a parameter hides a hook path.

Helpers:
    get_func_name(func, qualname=False): Return a human-readable function name.
    is_dotted_name(text): Check that a string is a dotted Python identifier path.
"""

import keyword
import logging
from functools import partial, partialmethod
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class AspectError(Exception):
    """Base exception for the transformer with structured context.

    Attributes:
        message: Human-readable error text.
        suggestions: List of short, imperative hints for remediation.
        context: Free-form key/value details safe to log and render.
    """

    def __init__(
        self,
        message: str,
        suggestions: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.suggestions = suggestions or []
        self.context = context or {}
        super().__init__(self._build_enhanced_message())

    def _build_enhanced_message(self) -> str:
        """Embed key context and suggestions into the exception string."""
        lines = [self.message]

        if self.context:
            if "declaration" in self.context:
                lines.append(f"  Declaration: {self.context['declaration']}")
            if "option" in self.context:
                lines.append(f"  Option: {self.context['option']}")
            location = format_location(self.context)
            if location:
                lines.append(f"  Location: {location}")

        if self.suggestions:
            lines.append("  Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"    • {suggestion}")

        return "\n".join(lines)

    def with_context(self, **context: Any) -> "AspectError":
        """Return a copy of this error with extra context merged in.

        Keys already present win, so the most specific location is kept.
        """
        merged = dict(context)
        merged.update(self.context)
        return type(self)(self.message, list(self.suggestions), merged)


class DirectiveError(AspectError):
    """Raised when the directive attached to a declaration is invalid."""


class MissingHooks(DirectiveError):
    """Raised when a directive specifies neither `before` nor `after`."""


class DuplicateKey(DirectiveError):
    """Raised when the same directive key is supplied more than once."""


class UnrecognizedOption(DirectiveError):
    """Raised when a directive carries a key other than `before`/`after`."""


class InvalidHookReference(DirectiveError):
    """Raised when a hook value is not a dotted name or a callable."""


class DeclarationError(AspectError):
    """Raised when the annotated declaration itself cannot be transformed."""


class UnsupportedDeclarationShape(DeclarationError):
    """Raised for declarations that are not functions with a body."""


class GenericParameterConflict(DeclarationError):
    """Raised when an internal identifier collides with user identifiers."""


class ShadowedHookReference(DeclarationError):
    """Raised when a parameter hides the first name of a hook path."""


def format_location(context: Dict[str, Any]) -> str:
    """Render `filename:line:column` from whatever parts the context holds."""
    parts = [
        str(context[key]) for key in ("filename", "line", "column") if key in context
    ]
    return ":".join(parts)


def get_func_name(func: Callable[..., Any], qualname: bool = False) -> str:
    """Return a readable name for a function.

    Args:
        func: The function object.
        qualname: If True, return the qualified name when available.

    Returns:
        The function's `__qualname__`, `__name__`, or a string fallback.
    """
    if isinstance(func, (partial, partialmethod)):
        return get_func_name(func.func, qualname=qualname)
    return getattr(func, "__qualname__" if qualname else "__name__", repr(func))


def is_dotted_name(text: str) -> bool:
    """Return True if `text` is `name` or `name.attr.attr` with no keywords."""
    if not isinstance(text, str) or not text:
        return False
    return all(
        part.isidentifier() and not keyword.iskeyword(part)
        for part in text.split(".")
    )
