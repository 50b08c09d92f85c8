r"""Directive parsing: which hooks wrap a declaration.

A directive is the ``before=``/``after=`` pair attached to a function, either
as keyword arguments of the :func:`fnaop.aspect` decorator or as the literal
arguments of an ``@aspect(...)`` decorator found in source text.

Example:
    >>> parse_directive([("before", "audit.enter"), ("after", "audit.leave")])
    Directive(before=HookRef(path='audit.enter', target=None), after=...)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Tuple

import libcst as cst
from libcst.helpers import get_full_name_for_node
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import ValidationError as PydanticValidationError

from .utils import (
    DuplicateKey,
    InvalidHookReference,
    MissingHooks,
    UnrecognizedOption,
    is_dotted_name,
)

logger = logging.getLogger(__name__)

__all__ = [
    "HOOK_SLOTS",
    "HookRef",
    "Directive",
    "parse_hook_ref",
    "parse_directive",
    "directive_from_decorator",
    "decorator_name",
]

HOOK_SLOTS: Tuple[str, ...] = ("before", "after")
"""Recognized directive keys, in invocation order."""


class HookRef(BaseModel):
    """Reference to a hook callable.

    Attributes:
        path: Dotted name resolved in the declaring module when the
            synthesized function runs, e.g. ``"hooks.before_fn"``.
        target: Callable bound directly into the synthesized function.

    Exactly one of ``path`` and ``target`` is set.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    path: Optional[str] = None
    target: Optional[Callable[..., Any]] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "HookRef":
        if (self.path is None) == (self.target is None):
            raise ValueError("exactly one of 'path' or 'target' must be given")
        if self.path is not None and not is_dotted_name(self.path):
            raise ValueError(f"{self.path!r} is not a dotted Python name")
        return self

    @property
    def head(self) -> Optional[str]:
        """First segment of the path, the name looked up in module globals."""
        return self.path.split(".", 1)[0] if self.path is not None else None

    def describe(self) -> str:
        if self.path is not None:
            return self.path
        return getattr(self.target, "__qualname__", repr(self.target))


class Directive(BaseModel):
    """Structured directive: optional before hook, optional after hook."""

    model_config = ConfigDict(frozen=True)

    before: Optional[HookRef] = None
    after: Optional[HookRef] = None

    @model_validator(mode="after")
    def _at_least_one(self) -> "Directive":
        if self.before is None and self.after is None:
            raise ValueError("a directive needs 'before' or 'after'")
        return self

    def hooks(self) -> Iterator[Tuple[str, HookRef]]:
        """Yield ``(slot, hook)`` for every hook present, before first."""
        for slot in HOOK_SLOTS:
            ref = getattr(self, slot)
            if ref is not None:
                yield slot, ref


def parse_hook_ref(value: Any, option: str = "hook") -> HookRef:
    """Convert a directive value into a :class:`HookRef`.

    Args:
        value: A dotted name string, a callable, or an existing HookRef.
        option: The directive key the value was given for (error context).

    Returns:
        The hook reference.

    Raises:
        InvalidHookReference: If the value is neither a dotted name nor callable.
    """
    if isinstance(value, HookRef):
        return value
    if isinstance(value, str):
        fields = {"path": value}
    elif callable(value):
        fields = {"target": value}
    else:
        raise InvalidHookReference(
            f"Hook for '{option}' must be a dotted name or a callable, "
            f"got {type(value).__name__}",
            ["Pass a string such as 'module.hook' or the hook function itself"],
            {"option": option},
        )
    try:
        return HookRef(**fields)
    except PydanticValidationError as exc:
        raise InvalidHookReference(
            f"Hook for '{option}' is not a valid reference: {value!r}",
            ["Use a dotted identifier path such as 'hooks.before_fn'"],
            {"option": option},
        ) from exc


def parse_directive(
    pairs: Iterable[Tuple[Optional[str], Any]],
    context: Optional[Dict[str, Any]] = None,
) -> Directive:
    """Parse directive key/value pairs into a :class:`Directive`.

    Args:
        pairs: ``(key, value)`` pairs in the order written. A ``None`` key
            stands for a positional argument. A ``None`` value means the hook
            slot is left empty.
        context: Extra error context (declaration name, location).

    Returns:
        The parsed directive.

    Raises:
        UnrecognizedOption: For any key other than ``before``/``after``.
        DuplicateKey: When a key appears twice.
        InvalidHookReference: When a value is not a valid hook reference.
        MissingHooks: When neither hook ends up specified.
    """
    context = dict(context or {})
    seen: Dict[str, Any] = {}
    for key, value in pairs:
        if key not in HOOK_SLOTS:
            shown = "positional argument" if key is None else repr(key)
            raise UnrecognizedOption(
                f"Unrecognized directive option: {shown}",
                [f"Use only keyword options {', '.join(HOOK_SLOTS)}"],
                {**context, "option": key if key is not None else "<positional>"},
            )
        if key in seen:
            raise DuplicateKey(
                f"Directive option '{key}' given more than once",
                [f"Keep a single '{key}=' option"],
                {**context, "option": key},
            )
        seen[key] = value

    hooks: Dict[str, HookRef] = {}
    for key, value in seen.items():
        if value is None:
            continue
        try:
            hooks[key] = parse_hook_ref(value, option=key)
        except InvalidHookReference as exc:
            raise exc.with_context(**context) from exc.__cause__

    if not hooks:
        raise MissingHooks(
            "Directive specifies no hooks",
            ["Pass before='...' and/or after='...'"],
            context,
        )

    directive = Directive(**hooks)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Parsed directive: %s",
            ", ".join(f"{slot}={ref.describe()}" for slot, ref in directive.hooks()),
        )
    return directive


class _NonLiteral:
    """Placeholder for a decorator argument that is not a string literal."""

    def __init__(self, code: str):
        self.code = code

    def __repr__(self) -> str:
        return self.code


def _literal_value(node: cst.BaseExpression) -> Any:
    if isinstance(node, (cst.SimpleString, cst.ConcatenatedString)):
        value = node.evaluated_value
        if isinstance(value, str):
            return value
    if isinstance(node, cst.Name) and node.value == "None":
        return None
    return _NonLiteral(cst.Module(body=()).code_for_node(node))


def decorator_name(decorator: cst.Decorator) -> Optional[str]:
    """Dotted name of a decorator, with any call stripped (``a.b(...)`` -> ``a.b``)."""
    return get_full_name_for_node(decorator.decorator)


def directive_from_decorator(
    decorator: cst.Decorator, context: Optional[Dict[str, Any]] = None
) -> Directive:
    """Parse the directive spelled by an ``@aspect(...)`` decorator node.

    Hook values must be string literals; anything else is reported as an
    invalid hook reference, since source text cannot carry callables.
    """
    context = dict(context or {})
    expression = decorator.decorator
    pairs = []
    if isinstance(expression, cst.Call):
        for arg in expression.args:
            if arg.star:
                raise UnrecognizedOption(
                    f"Unpacked '{arg.star}' arguments are not allowed in a directive",
                    ["Spell out before='...' and after='...' explicitly"],
                    {**context, "option": arg.star},
                )
            key = arg.keyword.value if arg.keyword is not None else None
            pairs.append((key, _literal_value(arg.value)))

    for key, value in pairs:
        if isinstance(value, _NonLiteral) and key in HOOK_SLOTS:
            raise InvalidHookReference(
                f"Hook for '{key}' must be a string literal, got `{value.code}`",
                [f"Write {key}=\"{value.code}\" to reference the hook by name"],
                {**context, "option": key},
            )
    return parse_directive(pairs, context)
